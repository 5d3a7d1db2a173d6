import pytest

from readme_cicd.parsing.markdown_parser import MarkdownReadmeParser

README = """\
# Demo Project

Short description.

## Installation

```bash
pip install -r requirements.txt
# not a heading
```

## Usage ##

```python
print("hi")
```
"""


def test_parse_sections_title_and_code_blocks():
    document = MarkdownReadmeParser().parse(README)

    assert document.title == "Demo Project"
    assert [(s.title, s.level) for s in document.sections] == [
        ("Demo Project", 1),
        ("Installation", 2),
        ("Usage", 2),
    ]
    assert [(b.language, b.line) for b in document.code_blocks] == [("bash", 7), ("python", 14)]
    assert document.code_blocks[0].code == "pip install -r requirements.txt\n# not a heading"
    assert "pip install" in document.find_section("install").content
    assert document.code_in("BASH") == (document.code_blocks[0],)


def test_unterminated_fence_is_kept():
    document = MarkdownReadmeParser().parse("# T\n```sh\nnpm ci\n")

    assert document.code_blocks[0].language == "sh"
    assert document.code_blocks[0].code == "npm ci"


def test_document_without_headings_has_no_title():
    document = MarkdownReadmeParser().parse("plain text\n## Second level only\n")

    assert document.title is None
    assert document.find_section("missing") is None


def test_empty_and_non_string_content_rejected():
    parser = MarkdownReadmeParser()

    with pytest.raises(ValueError, match="README content is empty"):
        parser.parse("   \n")
    with pytest.raises(TypeError):
        parser.parse(None)
