"""Low-level helpers shared across the application (config files, logging)."""
