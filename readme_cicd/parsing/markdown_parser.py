"""Minimal README parser: ATX headings and fenced code blocks.

Markdown tokenization is deliberately shallow here; the engine only needs a
document object analyzers can inspect. Any object with a `parse(content)`
method can replace this parser.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE_RE = re.compile(r"^(`{3,}|~{3,})\s*([\w+#.-]*)")


@dataclass(frozen=True)
class Section:
    title: str
    level: int
    content: str
    line: int


@dataclass(frozen=True)
class CodeBlock:
    language: str
    code: str
    line: int


@dataclass(frozen=True)
class ParsedDocument:
    content: str
    title: str | None
    sections: tuple[Section, ...]
    code_blocks: tuple[CodeBlock, ...]

    def find_section(self, keyword: str) -> Section | None:
        needle = keyword.lower()
        for section in self.sections:
            if needle in section.title.lower():
                return section
        return None

    def code_in(self, *languages: str) -> tuple[CodeBlock, ...]:
        wanted = {lang.lower() for lang in languages}
        return tuple(block for block in self.code_blocks if block.language in wanted)


class MarkdownReadmeParser:
    def parse(self, content: str) -> ParsedDocument:
        if not isinstance(content, str):
            raise TypeError(f"README content must be a string (type={type(content).__name__})")
        if not content.strip():
            raise ValueError("README content is empty")

        lines = content.splitlines()
        sections: list[Section] = []
        blocks: list[CodeBlock] = []

        heading: tuple[str, int, int] | None = None
        body: list[str] = []
        fence: str | None = None
        fence_lang = ""
        fence_line = 0
        fence_body: list[str] = []

        def close_section() -> None:
            if heading is not None:
                title, level, line = heading
                sections.append(Section(title=title, level=level, content="\n".join(body).strip(), line=line))

        for number, line in enumerate(lines, start=1):
            if fence is not None:
                if line.strip().startswith(fence):
                    blocks.append(CodeBlock(language=fence_lang, code="\n".join(fence_body), line=fence_line))
                    fence = None
                else:
                    fence_body.append(line)
                body.append(line)
                continue

            fence_match = _FENCE_RE.match(line.strip())
            if fence_match:
                fence = fence_match.group(1)
                fence_lang = fence_match.group(2).lower()
                fence_line = number
                fence_body = []
                body.append(line)
                continue

            heading_match = _HEADING_RE.match(line)
            if heading_match:
                close_section()
                heading = (heading_match.group(2), len(heading_match.group(1)), number)
                body = []
                continue
            body.append(line)

        if fence is not None:
            # Unterminated fence: keep what we have.
            blocks.append(CodeBlock(language=fence_lang, code="\n".join(fence_body), line=fence_line))
        close_section()

        title = next((s.title for s in sections if s.level == 1), None)
        return ParsedDocument(
            content=content, title=title, sections=tuple(sections), code_blocks=tuple(blocks)
        )
