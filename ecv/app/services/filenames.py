"""Recommended download filenames."""

from __future__ import annotations

import re

from ecv.app.schemas.request import RequestSettings


EXTENSIONS = {
    "docx": ".docx",
    "html": ".html",
    "pdf": ".pdf",
}

_WHITESPACE = re.compile(r"\s")


def recommended_filename(full_name: str, settings: RequestSettings) -> str:
    fmt = settings.output_format.lower()

    if fmt == "rawxml":
        return f"{settings.employee_id}-raw.xml"
    if fmt == "xml":
        return f"{settings.employee_id}.xml"

    extension = EXTENSIONS.get(fmt, "")

    if settings.is_far:
        filename = (
            f"Faculty_Annual_Report-{settings.academic_year}-{full_name}{extension}"
        )
        return _WHITESPACE.sub("_", filename)

    return f"{settings.employee_id}{extension}"
