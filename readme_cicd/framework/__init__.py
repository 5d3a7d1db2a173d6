"""Application framework: typed config and the explicit pipeline context."""
