"""
Export / import of snippets in JSON, plain text and Markdown.

Text and Markdown exports are meant to be human readable; the parsers accept
exactly what the exporters produce (plus hand edits that keep the layout).
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from observability import emit_event

from .errors import ImportFormatError, SnippetVaultError
from .snippet_service import SnippetService

FORMATS = ("json", "txt", "md")
MIME_TYPES = {"json": "application/json", "txt": "text/plain", "md": "text/markdown"}
TEXT_SEPARATOR = "=" * 50
MD_SEPARATOR = "---"
EXPORT_FIELDS = ("title", "description", "code", "language", "tags", "is_public", "is_favorite", "created_at")


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"imported": self.imported, "skipped": self.skipped, "errors": list(self.errors)}


def export_filename(fmt: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"snippets-export-{today.isoformat()}.{fmt}"


def format_from_filename(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    if ext not in FORMATS:
        raise ImportFormatError("Please select a JSON, TXT, or MD file")
    return ext


def _created_label(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, str) and value:
        return value.split("T", 1)[0]
    return ""


def _yes_no(flag: Any) -> str:
    return "Yes" if flag else "No"


# --- Export ---

def export_json(snippets: Iterable[Dict[str, Any]]) -> str:
    rows = []
    for s in snippets:
        row = {k: s.get(k) for k in EXPORT_FIELDS}
        if isinstance(row.get("created_at"), datetime):
            row["created_at"] = row["created_at"].isoformat()
        rows.append(row)
    return json.dumps(rows, indent=2, ensure_ascii=False)


def export_text(snippets: Iterable[Dict[str, Any]]) -> str:
    parts = []
    for s in snippets:
        lines = [
            f"=== {s.get('title') or ''} ===",
            f"Language: {s.get('language') or ''}",
            f"Created: {_created_label(s.get('created_at'))}",
            f"Public: {_yes_no(s.get('is_public'))}",
        ]
        if s.get("description"):
            lines.append(f"Description: {s['description']}")
        if s.get("tags"):
            lines.append(f"Tags: {', '.join(s['tags'])}")
        lines += ["", "Code:", str(s.get("code") or ""), "", TEXT_SEPARATOR, "", ""]
        parts.append("\n".join(lines))
    return "".join(parts)


def export_markdown(snippets: Iterable[Dict[str, Any]]) -> str:
    parts = []
    for s in snippets:
        language = str(s.get("language") or "")
        lines = [
            f"# {s.get('title') or ''}",
            "",
            f"**Language:** {language}",
            f"**Created:** {_created_label(s.get('created_at'))}",
            f"**Public:** {_yes_no(s.get('is_public'))}",
        ]
        if s.get("description"):
            lines.append(f"**Description:** {s['description']}")
        if s.get("tags"):
            lines.append(f"**Tags:** {', '.join(s['tags'])}")
        lines += ["", f"```{language.lower()}", str(s.get("code") or ""), "```", "", MD_SEPARATOR, "", ""]
        parts.append("\n".join(lines))
    return "".join(parts)


_EXPORTERS = {"json": export_json, "txt": export_text, "md": export_markdown}


def export_snippets(snippets: Iterable[Dict[str, Any]], fmt: str,
                    today: Optional[date] = None) -> Tuple[str, str, str]:
    """מחזיר (content, filename, mimetype)."""
    if fmt not in _EXPORTERS:
        raise ImportFormatError(f"Unknown export format: {fmt}")
    return _EXPORTERS[fmt](snippets), export_filename(fmt, today), MIME_TYPES[fmt]


# --- Import ---

def parse_json(content: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(content)
    except ValueError as e:
        raise ImportFormatError(f"Invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise ImportFormatError("JSON import must be an array of snippets")
    return [item for item in data if isinstance(item, dict)]


def _split_tags(raw: str) -> List[str]:
    return [t.strip() for t in raw.split(",") if t.strip()]


def _is_text_header(line: str) -> bool:
    line = line.strip()
    return line.startswith("=== ") and line.endswith(" ===")


def _text_sections(content: str) -> List[List[str]]:
    """פיצול לפי שורת מפריד שלמה שאחריה כותרת '=== title ===' או סוף הקובץ.

    שורות '=====' בתוך הקוד עצמו אינן מפרידות.
    """
    lines = content.split("\n")
    sections: List[List[str]] = [[]]
    for idx, line in enumerate(lines):
        if line.strip() == TEXT_SEPARATOR:
            following = next((x for x in lines[idx + 1:] if x.strip()), None)
            if following is None or _is_text_header(following):
                sections.append([])
                continue
        sections[-1].append(line)
    return [s for s in sections if any(x.strip() for x in s)]


def parse_text(content: str) -> List[Dict[str, Any]]:
    items = []
    for lines in _text_sections(content):
        while lines and not lines[0].strip():
            lines.pop(0)
        header = lines[0].strip()
        if not (header.startswith("===") and header.endswith("===")):
            raise ImportFormatError("Text import: every snippet must start with '=== title ==='")
        item: Dict[str, Any] = {"title": header.strip("=").strip(), "language": "text", "tags": []}
        code_start = None
        for idx, line in enumerate(lines[1:], start=1):
            if line.startswith("Language: "):
                item["language"] = line[len("Language: "):].strip() or "text"
            elif line.startswith("Public: "):
                item["is_public"] = line[len("Public: "):].strip().lower() == "yes"
            elif line.startswith("Description: "):
                item["description"] = line[len("Description: "):].strip()
            elif line.startswith("Tags: "):
                item["tags"] = _split_tags(line[len("Tags: "):])
            elif line.strip() == "Code:":
                code_start = idx + 1
                break
        if code_start is None:
            raise ImportFormatError(f"Text import: missing 'Code:' for {item['title']!r}")
        item["code"] = "\n".join(lines[code_start:]).rstrip("\n")
        items.append(item)
    return items


def _markdown_sections(content: str) -> List[List[str]]:
    """פיצול לפי שורות '---' שאינן בתוך בלוק קוד."""
    sections: List[List[str]] = [[]]
    in_fence = False
    for line in content.split("\n"):
        if line.startswith("```"):
            in_fence = not in_fence
        if not in_fence and line.strip() == MD_SEPARATOR:
            sections.append([])
            continue
        sections[-1].append(line)
    return [s for s in sections if any(x.strip() for x in s)]


def parse_markdown(content: str) -> List[Dict[str, Any]]:
    items = []
    for lines in _markdown_sections(content):
        while lines and not lines[0].strip():
            lines.pop(0)
        if not lines or not lines[0].startswith("# "):
            raise ImportFormatError("Markdown import: every snippet must start with '# title'")
        item: Dict[str, Any] = {"title": lines[0][2:].strip(), "language": "text", "tags": []}
        code: Optional[List[str]] = None
        fence_lang = ""
        for line in lines[1:]:
            if code is not None:
                if line.startswith("```"):
                    break
                code.append(line)
            elif line.startswith("```"):
                fence_lang = line[3:].strip()
                code = []
            elif line.startswith("**Language:** "):
                item["language"] = line[len("**Language:** "):].strip() or "text"
            elif line.startswith("**Public:** "):
                item["is_public"] = line[len("**Public:** "):].strip().lower() == "yes"
            elif line.startswith("**Description:** "):
                item["description"] = line[len("**Description:** "):].strip()
            elif line.startswith("**Tags:** "):
                item["tags"] = _split_tags(line[len("**Tags:** "):])
        if code is None:
            raise ImportFormatError(f"Markdown import: missing code block for {item['title']!r}")
        if item["language"] == "text" and fence_lang:
            item["language"] = fence_lang
        item["code"] = "\n".join(code)
        items.append(item)
    return items


_PARSERS = {"json": parse_json, "txt": parse_text, "md": parse_markdown}


def parse_snippets(content: str, fmt: str) -> List[Dict[str, Any]]:
    if fmt not in _PARSERS:
        raise ImportFormatError(f"Unknown import format: {fmt}")
    return _PARSERS[fmt](content or "")


def import_snippets(service: SnippetService, user_id: str, content: str, fmt: str) -> ImportResult:
    """כל פריט נוצר דרך מסלול היצירה הרגיל; פריט לא תקין נספר כ-skipped."""
    result = ImportResult()
    for idx, item in enumerate(parse_snippets(content, fmt), start=1):
        data = {k: item.get(k) for k in ("title", "description", "code", "language", "tags", "is_public", "is_favorite")}
        try:
            service.create(user_id, {k: v for k, v in data.items() if v is not None})
            result.imported += 1
        except SnippetVaultError as e:
            result.skipped += 1
            result.errors.append(f"#{idx}: {e}")
    emit_event("snippets_imported", user_id=user_id, format=fmt,
               imported=result.imported, skipped=result.skipped)
    return result
