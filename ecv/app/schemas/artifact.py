from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


MEDIA_TYPES: Dict[str, str] = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "html": "text/html; charset=utf-8",
    "xml": "text/xml; charset=utf-8",
    "rawxml": "text/xml; charset=utf-8",
}

DEFAULT_MEDIA_TYPE = "application/octet-stream"


def media_type_for(output_format: str) -> str:
    return MEDIA_TYPES.get(output_format, DEFAULT_MEDIA_TYPE)


@dataclass(frozen=True)
class OutputArtifact:
    """A produced file, intermediate or final."""

    path: Path
    media_type: str
    page_count: Optional[int] = None


@dataclass(frozen=True)
class ProducedDocument:
    """Final hand-off to the caller, who owns and deletes ``path``."""

    path: Path
    filename: str
    media_type: str
