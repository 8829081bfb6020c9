"""
ShareNotes Backend — Catalog Query Helpers
============================================

What:  Pure helpers used by NoteService.list_notes to turn raw search
       parameters into SQLAlchemy filter clauses and pagination numbers.
How:   Substring filters become escaped ILIKE expressions, so caller input
       is matched literally and never interpreted as a pattern.

Filter composition (all provided filters ANDed):
    subject  → subject ILIKE %subject%
    faculty  → faculty ILIKE %faculty%
    q        → subject ILIKE %q% OR faculty ILIKE %q%
    uploader → uploader_id = uploader
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from sharenotes.config import settings
from sharenotes.models.note import Note

LIKE_ESCAPE = "\\"

# Largest OFFSET handed to the database; fits a signed 32-bit integer
MAX_OFFSET = 2**31 - 1


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so `term` matches literally."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def contains_ci(column: Any, term: str) -> ColumnElement[bool]:
    """Case-insensitive substring test on `column`."""
    return column.ilike(f"%{escape_like(term)}%", escape=LIKE_ESCAPE)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_filters(
    query: Optional[str] = None,
    subject: Optional[str] = None,
    faculty: Optional[str] = None,
    uploader_id: Optional[str] = None,
) -> List[ColumnElement[bool]]:
    """
    Build the WHERE clauses for a catalog search.

    Blank strings are treated as "not given", matching what a search form
    submits for an empty field.
    """
    clauses: List[ColumnElement[bool]] = []

    subject = _clean(subject)
    if subject:
        clauses.append(contains_ci(Note.subject, subject))

    faculty = _clean(faculty)
    if faculty:
        clauses.append(contains_ci(Note.faculty, faculty))

    query = _clean(query)
    if query:
        clauses.append(or_(contains_ci(Note.subject, query), contains_ci(Note.faculty, query)))

    uploader_id = _clean(uploader_id)
    if uploader_id:
        clauses.append(Note.uploader_id == uploader_id)

    return clauses


def coerce_positive_int(value: Any, default: int) -> int:
    """
    Parse a caller-supplied page number or size.

    Non-numeric, fractional-looking garbage, zero and negative values fall
    back to `default` instead of raising.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class Page:
    """Resolved pagination window."""
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def page_count(self, total: int) -> int:
        return (total + self.limit - 1) // self.limit if total else 0


def resolve_page(page: Any = None, limit: Any = None) -> Page:
    """
    Coerce raw page/limit values.

    limit is capped at settings.max_page_limit. page is capped so the offset
    stays within MAX_OFFSET; a page that far out is empty either way.
    """
    resolved_limit = min(
        coerce_positive_int(limit, settings.default_page_limit), settings.max_page_limit
    )
    resolved_page = min(coerce_positive_int(page, 1), MAX_OFFSET // resolved_limit + 1)
    return Page(page=resolved_page, limit=resolved_limit)
