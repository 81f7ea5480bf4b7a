"""
FAR section splitting.

A FAR document mixes orientations: one summary table is landscape, the
rest is portrait. The renderer marks each independently convertible
part as a top-level ``<section id="section">``.

Rules:
- The first marked section is the shared stylesheet. It is prepended to
  every other section before conversion and is never converted alone.
- Sections with no visible text are skipped.
- Remaining sections are numbered from zero. Number 1 is landscape; all
  others are portrait. This follows the FAR template's fixed layout and
  is not inferred from content.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from bs4 import BeautifulSoup, Tag

from ecv.app.errors import RenderError
from ecv.app.schemas.result import StageResult
from ecv.app.services.page_renderer import Orientation

logger = logging.getLogger("ecv.sections")


SECTION_TAG = "section"
SECTION_MARKER = "section"
LANDSCAPE_SECTION_INDEX = 1


@dataclass(frozen=True)
class DocumentSection:
    index: int
    html: str
    stylesheet: str
    orientation: Orientation

    @property
    def markup(self) -> str:
        return self.stylesheet + self.html


def _is_top_level(tag: Tag) -> bool:
    return tag.find_parent(SECTION_TAG, id=SECTION_MARKER) is None


class SectionSplitter:
    def split(self, html: str, *, trace_id: str = "-") -> StageResult[List[DocumentSection]]:
        soup = BeautifulSoup(html, "html.parser")
        marked = [
            tag
            for tag in soup.find_all(SECTION_TAG, id=SECTION_MARKER)
            if _is_top_level(tag)
        ]

        if not marked:
            logger.error("section_markers_missing", extra={"trace_id": trace_id})
            return StageResult.failure(
                RenderError("FAR document has no section markers")
            )

        stylesheet = str(marked[0])
        sections: List[DocumentSection] = []

        for tag in marked[1:]:
            if not tag.get_text().strip():
                continue
            index = len(sections)
            sections.append(
                DocumentSection(
                    index=index,
                    html=str(tag),
                    stylesheet=stylesheet,
                    orientation=(
                        "landscape" if index == LANDSCAPE_SECTION_INDEX else "portrait"
                    ),
                )
            )

        if not sections:
            logger.error("sections_all_empty", extra={"trace_id": trace_id})
            return StageResult.failure(RenderError("FAR document has no content"))

        logger.info(
            "sections_split",
            extra={
                "trace_id": trace_id,
                "section_count": len(sections),
                "orientations": [s.orientation for s in sections],
            },
        )
        return StageResult.success(sections)
