"""
Markup sanitizing for the free-text fields of a canonical document.

Free-text fields come from user-entered rich text in the record system
and carry arbitrary markup. Only a small set of inline tags survives;
every other tag is unwrapped so its text is kept. Scripts, styles and
comments are dropped with their content.

Sanitizing is idempotent and best-effort: a field that cannot be
sanitized is left as it was and the failure is logged.
"""

from __future__ import annotations

import logging
from typing import FrozenSet

from bs4 import BeautifulSoup, Comment

from ecv.app.errors import SanitizeError
from ecv.app.schemas.document import (
    MARKUP_FIELDS,
    CanonicalDocument,
    MarkupText,
    Record,
)

logger = logging.getLogger("ecv.sanitizer")


ALLOWED_TAGS: FrozenSet[str] = frozenset(
    {"a", "b", "br", "em", "i", "li", "ol", "p", "strong", "sub", "sup", "u", "ul"}
)

_DROPPED_WITH_CONTENT: FrozenSet[str] = frozenset({"script", "style"})


def strip_markup(markup: str, allowed: FrozenSet[str] = ALLOWED_TAGS) -> str:
    """Remove every tag not in ``allowed``, keeping its text."""
    if "<" not in markup and "&" not in markup:
        return markup

    soup = BeautifulSoup(markup, "html.parser")

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        if tag.name in _DROPPED_WITH_CONTENT:
            tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in allowed:
            tag.unwrap()
            continue
        for attr in [a for a in tag.attrs if a.lower().startswith("on")]:
            del tag[attr]

    return str(soup)


class ContentSanitizer:
    def __init__(self, allowed_tags: FrozenSet[str] = ALLOWED_TAGS) -> None:
        self._allowed = allowed_tags

    def sanitize(self, document: CanonicalDocument, *, trace_id: str = "-") -> CanonicalDocument:
        categories = [
            category.model_copy(
                update={
                    "records": [
                        self._sanitize_record(record, trace_id)
                        for record in category.records
                    ]
                }
            )
            for category in document.categories
        ]
        logger.info("tags_stripped", extra={"trace_id": trace_id})
        return document.model_copy(update={"categories": categories})

    def _sanitize_record(self, record: Record, trace_id: str) -> Record:
        updates = {}
        for field in MARKUP_FIELDS:
            current: MarkupText = getattr(record, field)
            if current.structured or not current.value:
                continue
            try:
                cleaned = strip_markup(current.value, self._allowed)
            except Exception as exc:
                error = SanitizeError(f"Could not sanitize field '{field}'", detail=str(exc))
                logger.warning(
                    "sanitize_failed",
                    extra={"trace_id": trace_id, "field": field, "error": str(error)},
                )
                continue
            if cleaned != current.value:
                updates[field] = MarkupText(value=cleaned)
        return record.model_copy(update=updates) if updates else record
