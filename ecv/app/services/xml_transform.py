"""
Record-system XML to canonical document.

Two steps, both owned by this module:

1. ``transform``: apply the externally supplied XSLT definition to raw
   record-system XML, producing canonical XML text.
2. ``load_document``: parse canonical XML into a validated
   ``CanonicalDocument``. Nothing downstream touches XML nodes.

Parsing is hardened: no entity resolution, no network access, no DTD
loading.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from lxml import etree
from pydantic import ValidationError as PydanticValidationError

from ecv.app.errors import TransformError
from ecv.app.schemas.document import CanonicalDocument
from ecv.app.schemas.result import StageResult

logger = logging.getLogger("ecv.xml_transform")

XmlInput = Union[str, bytes]


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )


def _as_bytes(xml: XmlInput) -> bytes:
    # lxml rejects str input carrying an encoding declaration.
    return xml.encode("utf-8") if isinstance(xml, str) else xml


class XmlTransformer:
    def __init__(self, transform_path: Path) -> None:
        self._transform_path = Path(transform_path)
        self._xslt: Optional[etree.XSLT] = None

    def _load_transform(self) -> etree.XSLT:
        if self._xslt is None:
            doc = etree.parse(str(self._transform_path), _parser())
            self._xslt = etree.XSLT(doc)
        return self._xslt

    def transform(self, raw_xml: XmlInput, *, trace_id: str = "-") -> StageResult[str]:
        try:
            source = etree.fromstring(_as_bytes(raw_xml), _parser())
        except (etree.XMLSyntaxError, ValueError) as exc:
            logger.warning(
                "raw_xml_not_well_formed",
                extra={"trace_id": trace_id, "error": str(exc)},
            )
            return StageResult.failure(
                TransformError("Raw XML is not well-formed", detail=str(exc))
            )

        try:
            xslt = self._load_transform()
        except (OSError, etree.XMLSyntaxError, etree.XSLTParseError) as exc:
            logger.error(
                "transform_definition_unavailable",
                extra={
                    "trace_id": trace_id,
                    "transform_path": str(self._transform_path),
                    "error": str(exc),
                },
            )
            return StageResult.failure(
                TransformError("Transform definition could not be loaded", detail=str(exc))
            )

        try:
            result = xslt(source)
        except etree.XSLTApplyError as exc:
            logger.error(
                "transform_application_failed",
                extra={
                    "trace_id": trace_id,
                    "error": str(exc),
                    "xslt_log": str(xslt.error_log),
                },
            )
            return StageResult.failure(
                TransformError("Transform could not be applied", detail=str(exc))
            )

        if result.getroot() is None:
            logger.error(
                "transform_application_failed",
                extra={"trace_id": trace_id, "error": "empty result tree"},
            )
            return StageResult.failure(
                TransformError("Transform produced no document")
            )

        logger.info("transform_complete", extra={"trace_id": trace_id})
        return StageResult.success(str(result))

    def load_document(
        self,
        canonical_xml: XmlInput,
        *,
        trace_id: str = "-",
    ) -> StageResult[CanonicalDocument]:
        try:
            root = etree.fromstring(_as_bytes(canonical_xml), _parser())
            document = CanonicalDocument.from_element(root)
        except (etree.XMLSyntaxError, ValueError, PydanticValidationError) as exc:
            logger.warning(
                "canonical_document_invalid",
                extra={"trace_id": trace_id, "error": str(exc)},
            )
            return StageResult.failure(
                TransformError("Canonical document is invalid", detail=str(exc))
            )

        logger.info(
            "canonical_document_loaded",
            extra={"trace_id": trace_id, "record_count": len(document.records)},
        )
        return StageResult.success(document)
