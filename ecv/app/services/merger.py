"""
Recombination of per-section artifacts into one artifact.

Order is preserved: artifact *i* contributes its pages after artifact
*i - 1*. Inputs are deleted only after a successful merge. A failed merge
removes whatever partial output it wrote.
"""

from __future__ import annotations

import copy
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Sequence

import pikepdf
from docx import Document
from docx.enum.section import WD_SECTION
from docx.oxml.ns import qn

from ecv.app.errors import MergeError
from ecv.app.schemas.artifact import OutputArtifact, media_type_for
from ecv.app.schemas.result import StageResult

logger = logging.getLogger("ecv.merger")


def _missing(artifacts: Sequence[OutputArtifact]) -> list:
    return [str(a.path) for a in artifacts if not a.path.exists()]


def _discard(path: Path) -> None:
    path.unlink(missing_ok=True)


class Merger:
    def merge_pdfs(
        self,
        artifacts: Sequence[OutputArtifact],
        destination: Path,
        *,
        trace_id: str = "-",
    ) -> StageResult[OutputArtifact]:
        precheck = self._precheck(artifacts, trace_id)
        if precheck is not None:
            return precheck

        try:
            # Sources stay open until save; stream data is copied lazily.
            with ExitStack() as stack:
                merged = stack.enter_context(pikepdf.new())
                for artifact in artifacts:
                    part = stack.enter_context(pikepdf.open(artifact.path))
                    merged.pages.extend(part.pages)
                merged.save(destination)
                page_count = len(merged.pages)
        except (pikepdf.PdfError, OSError) as exc:
            _discard(destination)
            logger.error(
                "pdf_merge_failed",
                extra={"trace_id": trace_id, "error": str(exc)},
            )
            return StageResult.failure(MergeError("PDF merge failed", detail=str(exc)))

        for artifact in artifacts:
            _discard(artifact.path)

        logger.info(
            "pdf_merged",
            extra={
                "trace_id": trace_id,
                "output_path": str(destination),
                "part_count": len(artifacts),
                "page_count": page_count,
            },
        )
        return StageResult.success(
            OutputArtifact(path=destination, media_type=media_type_for("pdf"), page_count=page_count)
        )

    def merge_docx(
        self,
        artifacts: Sequence[OutputArtifact],
        destination: Path,
        *,
        trace_id: str = "-",
    ) -> StageResult[OutputArtifact]:
        """
        Merge into the first artifact as the base document.

        Each following artifact becomes its own new-page section that
        keeps the page geometry it was built with, so a landscape part
        stays landscape. Footers link to the previous section.
        """
        precheck = self._precheck(artifacts, trace_id)
        if precheck is not None:
            return precheck

        try:
            base = Document(str(artifacts[0].path))
            body = base.element.body

            for artifact in artifacts[1:]:
                part = Document(str(artifact.path))
                geometry = part.sections[0]

                section = base.add_section(WD_SECTION.NEW_PAGE)
                section.orientation = geometry.orientation
                section.page_width = geometry.page_width
                section.page_height = geometry.page_height
                section.top_margin = geometry.top_margin
                section.bottom_margin = geometry.bottom_margin
                section.left_margin = geometry.left_margin
                section.right_margin = geometry.right_margin

                sentinel = body.sectPr
                for element in part.element.body.iterchildren():
                    if element.tag == qn("w:sectPr"):
                        continue
                    sentinel.addprevious(copy.deepcopy(element))

            base.save(str(destination))
        except Exception as exc:
            _discard(destination)
            logger.error(
                "docx_merge_failed",
                extra={"trace_id": trace_id, "error": repr(exc)},
            )
            return StageResult.failure(MergeError("DOCX merge failed", detail=repr(exc)))

        if not destination.exists():
            return StageResult.failure(MergeError("DOCX merge produced no file"))

        for artifact in artifacts:
            _discard(artifact.path)

        logger.info(
            "docx_merged",
            extra={
                "trace_id": trace_id,
                "output_path": str(destination),
                "part_count": len(artifacts),
            },
        )
        return StageResult.success(
            OutputArtifact(path=destination, media_type=media_type_for("docx"))
        )

    def _precheck(self, artifacts: Sequence[OutputArtifact], trace_id: str):
        if not artifacts:
            logger.error("merge_without_inputs", extra={"trace_id": trace_id})
            return StageResult.failure(MergeError("Nothing to merge"))

        missing = _missing(artifacts)
        if missing:
            logger.error(
                "merge_input_missing",
                extra={"trace_id": trace_id, "missing": missing},
            )
            return StageResult.failure(
                MergeError("Merge input missing", detail=", ".join(missing))
            )
        return None
