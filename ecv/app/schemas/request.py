"""
Request settings for a single document run.

Settings arrive under their wire names (``employeeId``, ``ecvType``, ...)
from the HTTP layer and are validated once, here. The resulting model is
immutable for the rest of the run.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from ecv.app.errors import ValidationError
from ecv.app.schemas.result import StageResult

logger = logging.getLogger("ecv.settings")


STANDARD_OUTPUT_FORMATS = ("pdf", "docx", "html")
DEBUG_OUTPUT_FORMATS = ("rawxml", "xml")

EcvType = Literal["self", "far"]
EcvFormat = Literal["ecv", "far"]


def _normalized(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


class RequestSettings(BaseModel):
    """
    Validated settings for creating one document.

    Validation context:
        ``debug_xml`` (bool) enables the ``rawxml`` and ``xml`` output
        formats. Without it they are rejected like any unknown format.
    """

    employee_id: str = Field(..., alias="employeeId")
    ecv_type: EcvType = Field("self", alias="ecvType")
    ecv_format: EcvFormat = Field("ecv", alias="ecvFormat")
    academic_year: Optional[str] = Field(None, alias="academicYear")
    output_format: str = Field(..., alias="outputFormat")
    operator_id: Optional[str] = Field(None, alias="operatorId")
    use_content_disposition: bool = Field(False, alias="useContentDisposition")

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("employee_id", mode="before")
    @classmethod
    def _employee_id_present(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("employeeId is required")
        return text

    @field_validator("ecv_type", mode="before")
    @classmethod
    def _default_ecv_type(cls, value: Any) -> str:
        return _normalized(value) or "self"

    @field_validator("ecv_format", mode="before")
    @classmethod
    def _default_ecv_format(cls, value: Any) -> str:
        return _normalized(value) or "ecv"

    @field_validator("academic_year", mode="before")
    @classmethod
    def _strip_year(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value).strip() or None

    @field_validator("output_format", mode="before")
    @classmethod
    def _allowed_output_format(cls, value: Any, info: ValidationInfo) -> str:
        fmt = _normalized(value)
        if fmt is None:
            raise ValueError("outputFormat is required")

        allowed = list(STANDARD_OUTPUT_FORMATS)
        if (info.context or {}).get("debug_xml", False):
            allowed.extend(DEBUG_OUTPUT_FORMATS)

        if fmt not in allowed:
            raise ValueError(f"Unsupported outputFormat '{fmt}'")
        return fmt

    @model_validator(mode="after")
    def _far_requires_academic_year(self) -> "RequestSettings":
        if (self.ecv_type == "far" or self.ecv_format == "far") and not self.academic_year:
            raise ValueError("FAR documents require an academicYear")
        return self

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def is_far(self) -> bool:
        """Whether the FAR report layout (split/convert/merge) applies."""
        return self.ecv_format == "far"

    @property
    def is_debug_format(self) -> bool:
        return self.output_format in DEBUG_OUTPUT_FORMATS


def parse_request_settings(
    data: Mapping[str, Any],
    *,
    debug_xml: bool = False,
) -> StageResult[RequestSettings]:
    """
    Validate raw wire settings.

    Returns a failed result carrying ``ValidationError`` instead of
    raising.
    """
    try:
        settings = RequestSettings.model_validate(
            dict(data),
            context={"debug_xml": debug_xml},
        )
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        logger.info("settings_rejected", extra={"problems": problems})
        return StageResult.failure(
            ValidationError("Invalid request settings", detail=problems)
        )
    return StageResult.success(settings)
