"""
HTML rendering of a sanitized canonical document.

Rendering contract:
- Deterministic template rendering (Jinja2 + StrictUndefined).
- HTML autoescaping is on. Free-text fields are the only values emitted
  unescaped, through the ``markup`` filter, and only after sanitizing.
  Structured fields are never sanitized, so they render as escaped text.
- One template serves both report variants; ``ecv_format`` selects the
  variant branches (FAR adds the academic year and section markers).
- The print handler's variant hook runs on the rendered HTML before it
  is returned.
"""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)
from lxml import etree
from markupsafe import Markup, escape

from ecv.app.errors import RenderError
from ecv.app.schemas.document import CanonicalDocument, MarkupText
from ecv.app.schemas.request import RequestSettings
from ecv.app.schemas.result import StageResult
from ecv.app.services.print_handler import PrintHandler

logger = logging.getLogger("ecv.html_render")


REPORT_TEMPLATE = "report.html.jinja"


def _text_content(fragment: str) -> str:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)
    try:
        root = etree.fromstring(f"<field>{fragment}</field>", parser)
    except etree.XMLSyntaxError:
        return fragment
    etree.strip_elements(root, "script", "style", with_tail=False)
    return "".join(root.itertext())


def markup_filter(value: Any) -> Markup:
    if isinstance(value, MarkupText):
        if value.structured:
            return escape(_text_content(value.value))
        return Markup(value.value)
    return Markup(value or "")


def date_range_filter(record: Any) -> str:
    start = getattr(record, "start_date", "") or ""
    end = getattr(record, "end_date", "") or ""
    if start and end and start != end:
        return f"{start} – {end}"
    return start or end


class HtmlRenderer:
    def __init__(
        self,
        template_dir: Path,
        organization: str,
        print_handler: PrintHandler,
    ) -> None:
        self._organization = organization
        self._print_handler = print_handler
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            undefined=StrictUndefined,
            autoescape=select_autoescape(["html", "jinja"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["markup"] = markup_filter
        self._env.filters["date_range"] = date_range_filter

    def render(
        self,
        document: CanonicalDocument,
        settings: RequestSettings,
        *,
        trace_id: str = "-",
    ) -> StageResult[str]:
        ecv_format = (settings.ecv_format or "ecv").lower()

        context: Dict[str, Any] = {
            "ecv": document,
            "ecv_format": ecv_format,
            "academic_year": settings.academic_year or document.academic_year or "",
            "organization": self._organization,
            "generated_on": dt.date.today().isoformat(),
        }

        try:
            template = self._env.get_template(REPORT_TEMPLATE)
            html = template.render(context)
        except TemplateError as exc:
            logger.error(
                "template_render_failed",
                extra={"trace_id": trace_id, "error": str(exc)},
            )
            return StageResult.failure(
                RenderError("Template rendering failed", detail=str(exc))
            )

        html = self._print_handler.adjust(ecv_format, html)
        logger.info(
            "html_rendered",
            extra={"trace_id": trace_id, "ecv_format": ecv_format, "length": len(html)},
        )
        return StageResult.success(html)
