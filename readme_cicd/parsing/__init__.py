from readme_cicd.parsing.markdown_parser import CodeBlock, MarkdownReadmeParser, ParsedDocument, Section

__all__ = ["CodeBlock", "MarkdownReadmeParser", "ParsedDocument", "Section"]
