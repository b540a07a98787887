import json
from datetime import date, datetime, timezone

import pytest

from services.errors import ImportFormatError
from services.snippet_transfer import (
    export_markdown,
    export_snippets,
    export_text,
    format_from_filename,
    import_snippets,
    parse_markdown,
    parse_snippets,
    parse_text,
)

SNIPPETS = [
    {
        "title": "fib",
        "description": "fibonacci",
        "code": "def fib(n):\n    return n",
        "language": "python",
        "tags": ["math", "recursion"],
        "is_public": True,
        "is_favorite": False,
        "created_at": datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
    },
    {
        "title": "hr",
        "description": "",
        "code": "---\nfoo: bar",
        "language": "yaml",
        "tags": [],
        "is_public": False,
        "is_favorite": True,
        "created_at": "2024-03-02T08:00:00+00:00",
    },
]


def test_export_filename_and_mimetype():
    content, filename, mimetype = export_snippets(SNIPPETS, "json", today=date(2024, 5, 6))
    assert filename == "snippets-export-2024-05-06.json"
    assert mimetype == "application/json"
    rows = json.loads(content)
    assert rows[0]["created_at"] == "2024-03-01T12:00:00+00:00"
    assert set(rows[0]) == {"title", "description", "code", "language", "tags", "is_public",
                            "is_favorite", "created_at"}


def test_export_unknown_format():
    with pytest.raises(ImportFormatError):
        export_snippets(SNIPPETS, "xml")


def test_text_export_layout():
    text = export_text(SNIPPETS[:1])
    assert text.startswith("=== fib ===\nLanguage: python\nCreated: 2024-03-01\nPublic: Yes\n")
    assert "Tags: math, recursion" in text
    assert "=" * 50 in text


def test_text_export_parses_back():
    items = parse_text(export_text(SNIPPETS))
    assert [i["title"] for i in items] == ["fib", "hr"]
    assert items[0]["code"] == "def fib(n):\n    return n"
    assert items[0]["tags"] == ["math", "recursion"]
    assert items[0]["is_public"] is True
    assert items[1]["language"] == "yaml"


def test_text_banner_lines_in_code_survive_import():
    banner = {"title": "banner", "code": "# " + "=" * 60 + "\nprint('hi')", "language": "python"}
    bare_rule = {"title": "rule", "code": "=" * 50 + "\nx = 1", "language": "python"}
    items = parse_text(export_text([banner, bare_rule, SNIPPETS[0]]))
    assert [i["title"] for i in items] == ["banner", "rule", "fib"]
    assert items[0]["code"] == banner["code"]
    assert items[1]["code"] == bare_rule["code"]


def test_markdown_separator_inside_code_block_is_kept():
    md = export_markdown(SNIPPETS)
    assert "```python" in md
    items = parse_markdown(md)
    assert len(items) == 2
    assert items[1]["code"] == "---\nfoo: bar"
    assert items[1]["is_public"] is False


def test_markdown_uses_fence_language_when_missing():
    items = parse_markdown("# tiny\n\n```go\nfmt.Println(1)\n```\n")
    assert items[0]["language"] == "go"
    assert items[0]["code"] == "fmt.Println(1)"


@pytest.mark.parametrize(
    "content,fmt",
    [
        ("{not json", "json"),
        ('{"title": "x"}', "json"),
        ("no header here\nCode:\nx", "txt"),
        ("=== t ===\nLanguage: python\n", "txt"),
        ("plain text", "md"),
        ("# t\n\nno code", "md"),
    ],
)
def test_parse_errors(content, fmt):
    with pytest.raises(ImportFormatError):
        parse_snippets(content, fmt)


def test_format_from_filename():
    assert format_from_filename("backup.JSON") == "json"
    assert format_from_filename("notes.md") == "md"
    with pytest.raises(ImportFormatError):
        format_from_filename("archive.zip")


def test_import_creates_valid_items_and_skips_invalid(svc):
    payload = json.dumps([
        {"title": "ok", "code": "x = 1", "language": "python", "tags": ["a"]},
        {"title": "", "code": "y"},
        {"title": "bad lang", "code": "z", "language": "cobol-2099"},
    ])
    result = import_snippets(svc.snippets, "u1", payload, "json")
    assert result.imported == 1
    assert result.skipped == 2
    assert len(result.errors) == 2
    titles = [s["title"] for s in svc.snippets.list_snippets("u1")]
    assert titles == ["ok"]


def test_json_export_then_import_keeps_fields(svc):
    content, _, _ = export_snippets(SNIPPETS, "json")
    result = import_snippets(svc.snippets, "u2", content, "json")
    assert result.imported == 2
    assert result.skipped == 0

    keys = ("title", "code", "language", "tags", "is_public")
    imported = {s["title"]: {k: s[k] for k in keys} for s in svc.snippets.list_snippets("u2")}
    assert imported == {s["title"]: {k: s[k] for k in keys} for s in SNIPPETS}
