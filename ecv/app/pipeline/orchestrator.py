"""
Document pipeline orchestrator.

The orchestrator only sequences stages. It does not inspect markup,
choose orientations or compute filenames itself.

Execution order:
    1. Settings validation
    2. Raw XML retrieval (skipped when XML is supplied directly)
    3. XML transform (skipped when canonical XML is supplied)
    4. Canonical document load and sanitizing
    5. HTML rendering
    6. Conversion: one job (standard), or split / convert each / merge (FAR)
    7. Filename resolution and hand-off

Every stage returns a ``StageResult``. The first failure ends the run.
All temporary files live in a request workspace that is removed on every
exit path; only the final artifact is released to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Union

import httpx

from ecv.app.config import Settings
from ecv.app.errors import (
    ConversionError,
    FetchError,
    InternalError,
    PipelineError,
    ValidationError,
)
from ecv.app.schemas.artifact import OutputArtifact, ProducedDocument, media_type_for
from ecv.app.schemas.request import RequestSettings, parse_request_settings
from ecv.app.schemas.result import StageResult
from ecv.app.services.converter import DocumentConverter
from ecv.app.services.filenames import recommended_filename
from ecv.app.services.footer import FooterGenerator, FooterSpec
from ecv.app.services.html_render import HtmlRenderer
from ecv.app.services.merger import Merger
from ecv.app.services.page_renderer import PageRenderer, WkhtmltopdfRenderer
from ecv.app.services.print_handler import PrintHandler
from ecv.app.services.record_source import RecordSourceClient
from ecv.app.services.sanitizer import ContentSanitizer
from ecv.app.services.sections import DocumentSection, SectionSplitter
from ecv.app.services.workspace import RequestWorkspace, new_unique_id
from ecv.app.services.xml_transform import XmlInput, XmlTransformer

logger = logging.getLogger("ecv.pipeline")


class DocumentPipeline:
    def __init__(
        self,
        *,
        config: Settings,
        record_source: Optional[RecordSourceClient],
        transformer: XmlTransformer,
        sanitizer: ContentSanitizer,
        renderer: HtmlRenderer,
        footer_generator: FooterGenerator,
        converter: DocumentConverter,
        splitter: SectionSplitter,
        merger: Merger,
    ) -> None:
        """
        Direct constructor.

        Intended for tests and explicit wiring. ``record_source`` may be
        None when every run supplies its own XML.
        """
        self._config = config
        self._record_source = record_source
        self._transformer = transformer
        self._sanitizer = sanitizer
        self._renderer = renderer
        self._footer_generator = footer_generator
        self._converter = converter
        self._splitter = splitter
        self._merger = merger

    # ------------------------------------------------------------------
    # Composition root
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        *,
        http_client: Optional[httpx.Client] = None,
        page_renderer: Optional[PageRenderer] = None,
    ) -> "DocumentPipeline":
        print_handler = PrintHandler()

        if page_renderer is None:
            page_renderer = WkhtmltopdfRenderer(
                config.layout,
                executable=config.wkhtmltopdf_path,
                timeout=config.render_timeout_seconds,
            )

        record_source = (
            RecordSourceClient(http_client, config) if http_client is not None else None
        )

        return cls(
            config=config,
            record_source=record_source,
            transformer=XmlTransformer(config.transform_path),
            sanitizer=ContentSanitizer(),
            renderer=HtmlRenderer(config.template_dir, config.organization, print_handler),
            footer_generator=FooterGenerator(config.layout, config.organization),
            converter=DocumentConverter(page_renderer, print_handler, config.layout),
            splitter=SectionSplitter(),
            merger=Merger(),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_document(
        self,
        settings: Union[RequestSettings, Mapping[str, Any]],
        *,
        raw_xml: Optional[XmlInput] = None,
        canonical_xml: Optional[XmlInput] = None,
        trace_id: Optional[str] = None,
    ) -> StageResult[ProducedDocument]:
        """
        Produce one document.

        On success the caller owns the returned file and must delete it
        after use. On failure no file is left behind.
        """
        trace_id = trace_id or new_unique_id()
        logger.info("transaction_started", extra={"trace_id": trace_id})

        try:
            result = self._run(settings, raw_xml, canonical_xml, trace_id)
        except Exception:
            logger.exception("unexpected_pipeline_failure", extra={"trace_id": trace_id})
            result = StageResult.failure(InternalError())
        finally:
            logger.info("transaction_complete", extra={"trace_id": trace_id})

        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(
        self,
        raw_settings: Union[RequestSettings, Mapping[str, Any]],
        raw_xml: Optional[XmlInput],
        canonical_xml: Optional[XmlInput],
        trace_id: str,
    ) -> StageResult[ProducedDocument]:
        if isinstance(raw_settings, RequestSettings):
            parsed = StageResult.success(raw_settings)
        else:
            parsed = parse_request_settings(raw_settings, debug_xml=self._config.debug_xml)
        if not self._checked("validate", parsed, trace_id):
            return StageResult.failure(parsed.error)
        settings = parsed.value

        logger.info(
            "settings_accepted",
            extra={
                "trace_id": trace_id,
                "employee_id": settings.employee_id,
                "ecv_type": settings.ecv_type,
                "ecv_format": settings.ecv_format,
                "output_format": settings.output_format,
                "operator_id": settings.operator_id,
            },
        )

        with RequestWorkspace(self._config.temp_dir) as workspace:
            # -- retrieval ----------------------------------------------
            if raw_xml is None and canonical_xml is None:
                if self._record_source is None:
                    return self._fail(FetchError("No record source configured"), trace_id)
                fetched = self._record_source.fetch(settings, trace_id=trace_id)
                if not self._checked("fetch", fetched, trace_id):
                    return StageResult.failure(fetched.error)
                raw_xml = fetched.value

            if settings.output_format == "rawxml":
                if raw_xml is None:
                    return self._fail(
                        ValidationError("rawxml output requires raw XML"), trace_id
                    )
                return self._hand_off_text(raw_xml, ".xml", "", settings, workspace, trace_id)

            # -- transform ----------------------------------------------
            if canonical_xml is None:
                transformed = self._transformer.transform(raw_xml, trace_id=trace_id)
                if not self._checked("transform", transformed, trace_id):
                    return StageResult.failure(transformed.error)
                canonical_xml = transformed.value

            if settings.output_format == "xml":
                return self._hand_off_text(canonical_xml, ".xml", "", settings, workspace, trace_id)

            loaded = self._transformer.load_document(canonical_xml, trace_id=trace_id)
            if not self._checked("load", loaded, trace_id):
                return StageResult.failure(loaded.error)

            document = self._sanitizer.sanitize(loaded.value, trace_id=trace_id)

            # -- render -------------------------------------------------
            rendered = self._renderer.render(document, settings, trace_id=trace_id)
            if not self._checked("render", rendered, trace_id):
                return StageResult.failure(rendered.error)
            html = rendered.value

            if settings.output_format == "html":
                return self._hand_off_text(html, ".html", document.name, settings, workspace, trace_id)

            # -- convert ------------------------------------------------
            footer = self._footer_generator.build(document.name, settings)
            if settings.is_far:
                converted = self._convert_far(html, footer, settings, workspace, trace_id)
            else:
                converted = self._convert_single(html, footer, settings, workspace, trace_id)
            if not self._checked("convert", converted, trace_id):
                return StageResult.failure(converted.error)

            return self._hand_off(converted.value, document.name, settings, workspace, trace_id)

    def _convert_single(
        self,
        html: str,
        footer: FooterSpec,
        settings: RequestSettings,
        workspace: RequestWorkspace,
        trace_id: str,
    ) -> StageResult[OutputArtifact]:
        fmt = settings.output_format
        if fmt == "pdf":
            return self._converter.to_pdf(
                html,
                footer=footer,
                destination=workspace.path(".pdf"),
                orientation="portrait",
                page_offset=0,
                trace_id=trace_id,
            )
        if fmt == "docx":
            return self._converter.to_docx(
                html,
                footer=footer,
                destination=workspace.path(".docx"),
                orientation="portrait",
                trace_id=trace_id,
            )
        return self._unsupported(fmt, trace_id)

    def _convert_far(
        self,
        html: str,
        footer: FooterSpec,
        settings: RequestSettings,
        workspace: RequestWorkspace,
        trace_id: str,
    ) -> StageResult[OutputArtifact]:
        """
        Split, convert each section in order, merge.

        PDF sections receive the running total of pages already produced
        as their starting offset, so footer page numbers continue across
        sections. Sections are strictly sequential for that reason.
        """
        fmt = settings.output_format
        if fmt not in ("pdf", "docx"):
            return self._unsupported(fmt, trace_id)

        split = self._splitter.split(html, trace_id=trace_id)
        if not split.ok:
            return StageResult.failure(split.error)
        sections: List[DocumentSection] = split.value

        suffix = f".{fmt}"
        artifacts: List[OutputArtifact] = []
        page_offset = 0

        for section in sections:
            destination = workspace.path(suffix, stem=f"section.{section.index}")
            if fmt == "pdf":
                job = self._converter.to_pdf(
                    section.markup,
                    footer=footer,
                    destination=destination,
                    orientation=section.orientation,
                    page_offset=page_offset,
                    trace_id=trace_id,
                )
            else:
                job = self._converter.to_docx(
                    section.markup,
                    footer=footer,
                    destination=destination,
                    orientation=section.orientation,
                    trace_id=trace_id,
                )
            if not job.ok:
                return job
            artifacts.append(job.value)
            page_offset += job.value.page_count or 0

        merged = workspace.path(suffix)
        if fmt == "pdf":
            return self._merger.merge_pdfs(artifacts, merged, trace_id=trace_id)
        return self._merger.merge_docx(artifacts, merged, trace_id=trace_id)

    # ------------------------------------------------------------------
    # Hand-off
    # ------------------------------------------------------------------

    def _hand_off_text(
        self,
        content: XmlInput,
        suffix: str,
        name: str,
        settings: RequestSettings,
        workspace: RequestWorkspace,
        trace_id: str,
    ) -> StageResult[ProducedDocument]:
        path = workspace.path(suffix)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        artifact = OutputArtifact(path=path, media_type=media_type_for(settings.output_format))
        return self._hand_off(artifact, name, settings, workspace, trace_id)

    def _hand_off(
        self,
        artifact: OutputArtifact,
        name: str,
        settings: RequestSettings,
        workspace: RequestWorkspace,
        trace_id: str,
    ) -> StageResult[ProducedDocument]:
        filename = recommended_filename(name, settings)
        released = workspace.release(artifact.path)
        logger.info(
            "document_created",
            extra={
                "trace_id": trace_id,
                "document_path": str(released),
                "recommended_filename": filename,
            },
        )
        return StageResult.success(
            ProducedDocument(
                path=released,
                filename=filename,
                media_type=media_type_for(settings.output_format),
            )
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _checked(self, stage: str, result: StageResult, trace_id: str) -> bool:
        if result.ok:
            logger.info("stage_complete", extra={"trace_id": trace_id, "stage": stage})
            return True
        logger.warning(
            "stage_failed",
            extra={
                "trace_id": trace_id,
                "stage": stage,
                "error_type": type(result.error).__name__,
                "error": str(result.error),
                "detail": result.error.detail,
            },
        )
        return False

    def _fail(self, error: PipelineError, trace_id: str) -> StageResult:
        self._checked(error.stage, StageResult.failure(error), trace_id)
        return StageResult.failure(error)

    def _unsupported(self, fmt: str, trace_id: str) -> StageResult[OutputArtifact]:
        error = ConversionError(f"Unsupported output format '{fmt}'")
        logger.error("unsupported_output_format", extra={"trace_id": trace_id, "output_format": fmt})
        return StageResult.failure(error)
