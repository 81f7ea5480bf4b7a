"""
HTML to page-oriented (PDF) and word-processing (DOCX) artifacts.

One conversion job turns one piece of HTML into one artifact: the whole
document on the standard path, one section at a time on the FAR path.
Every job receives the same footer and layout; only orientation and the
starting page offset vary.

Failures are logged and returned as ``ConversionError`` results, never
raised to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pikepdf

from ecv.app.config import DocumentLayout
from ecv.app.errors import ConversionError
from ecv.app.schemas.artifact import OutputArtifact, media_type_for
from ecv.app.schemas.result import StageResult
from ecv.app.services.docx_builder import build_docx
from ecv.app.services.footer import FooterSpec
from ecv.app.services.page_renderer import (
    Orientation,
    PageOptions,
    PageRenderer,
    PageRenderError,
)
from ecv.app.services.print_handler import PrintHandler

logger = logging.getLogger("ecv.converter")


class DocumentConverter:
    def __init__(
        self,
        page_renderer: PageRenderer,
        print_handler: PrintHandler,
        layout: DocumentLayout,
    ) -> None:
        self._page_renderer = page_renderer
        self._print_handler = print_handler
        self._layout = layout

    # ------------------------------------------------------------------
    # Page-oriented
    # ------------------------------------------------------------------

    def to_pdf(
        self,
        html: str,
        *,
        footer: FooterSpec,
        destination: Path,
        orientation: Orientation = "portrait",
        page_offset: int = 0,
        trace_id: str = "-",
    ) -> StageResult[OutputArtifact]:
        options = PageOptions(
            output_path=destination,
            footer=footer,
            orientation=orientation,
            page_offset=page_offset,
        )

        try:
            produced = self._page_renderer.render(html, options)
        except PageRenderError as exc:
            logger.error(
                "pdf_conversion_failed",
                extra={"trace_id": trace_id, "error": str(exc)},
            )
            return StageResult.failure(
                ConversionError("PDF conversion failed", detail=str(exc))
            )

        if not Path(produced).exists():
            logger.error(
                "pdf_conversion_failed",
                extra={"trace_id": trace_id, "error": "output file missing"},
            )
            return StageResult.failure(ConversionError("PDF output file is missing"))

        try:
            pages = self._print_handler.page_count(Path(produced))
        except (pikepdf.PdfError, OSError) as exc:
            logger.error(
                "pdf_unreadable",
                extra={"trace_id": trace_id, "error": str(exc)},
            )
            return StageResult.failure(
                ConversionError("PDF output could not be read", detail=str(exc))
            )

        logger.info(
            "pdf_created",
            extra={
                "trace_id": trace_id,
                "output_path": str(produced),
                "orientation": orientation,
                "page_offset": page_offset,
                "page_count": pages,
            },
        )
        return StageResult.success(
            OutputArtifact(path=Path(produced), media_type=media_type_for("pdf"), page_count=pages)
        )

    # ------------------------------------------------------------------
    # Word-processing
    # ------------------------------------------------------------------

    def to_docx(
        self,
        html: str,
        *,
        footer: FooterSpec,
        destination: Path,
        orientation: Orientation = "portrait",
        trace_id: str = "-",
    ) -> StageResult[OutputArtifact]:
        try:
            document = build_docx(html, footer, self._layout, orientation)
            document.save(str(destination))
        except Exception as exc:
            logger.error(
                "docx_creation_failed",
                extra={"trace_id": trace_id, "error": repr(exc)},
            )
            return StageResult.failure(
                ConversionError("DOCX creation failed", detail=repr(exc))
            )

        if not destination.exists():
            logger.error(
                "docx_creation_failed",
                extra={"trace_id": trace_id, "error": "output file missing"},
            )
            return StageResult.failure(ConversionError("DOCX output file is missing"))

        logger.info(
            "docx_created",
            extra={
                "trace_id": trace_id,
                "output_path": str(destination),
                "orientation": orientation,
            },
        )
        return StageResult.success(
            OutputArtifact(path=destination, media_type=media_type_for("docx"))
        )
