"""
Request settings validation.

Coverage:
  Defaults        blank ecvType / ecvFormat fall back to self / ecv
  Required        employeeId and outputFormat must be present
  FAR             a FAR type or format without a year is rejected
  Output format   case-insensitive; debug formats need debug_xml
"""

import pytest

from ecv.app.errors import ValidationError
from ecv.app.schemas.request import RequestSettings, parse_request_settings


def _parse(debug_xml=False, **wire):
    return parse_request_settings(wire, debug_xml=debug_xml)


# ---------------------------------------------------------------------------
# Defaults and normalization
# ---------------------------------------------------------------------------

def test_defaults_apply_to_missing_and_blank_values():
    result = _parse(employeeId="12345", outputFormat="PDF", ecvType="  ")

    assert result.ok
    settings = result.value
    assert settings.ecv_type == "self"
    assert settings.ecv_format == "ecv"
    assert settings.output_format == "pdf"
    assert settings.is_far is False
    assert settings.use_content_disposition is False


def test_wire_names_map_to_fields():
    result = _parse(
        employeeId=" 777 ",
        ecvType="FAR",
        ecvFormat="far",
        academicYear="2023-2024",
        outputFormat="docx",
        operatorId="op-9",
        useContentDisposition="true",
    )

    settings = result.unwrap()
    assert settings.employee_id == "777"
    assert settings.ecv_type == "far"
    assert settings.is_far is True
    assert settings.academic_year == "2023-2024"
    assert settings.operator_id == "op-9"
    assert settings.use_content_disposition is True


def test_settings_are_immutable():
    settings = _parse(employeeId="1", outputFormat="pdf").unwrap()

    with pytest.raises(Exception):
        settings.output_format = "docx"


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "wire",
    [
        {"outputFormat": "pdf"},
        {"employeeId": "   ", "outputFormat": "pdf"},
        {"employeeId": "1"},
        {"employeeId": "1", "outputFormat": "txt"},
        {"employeeId": "1", "outputFormat": "pdf", "ecvFormat": "resume"},
    ],
)
def test_invalid_settings_are_rejected(wire):
    result = _parse(**wire)

    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert result.error.detail


@pytest.mark.parametrize(
    "wire",
    [
        {"ecvFormat": "far"},
        {"ecvType": "far"},
        {"ecvFormat": "far", "academicYear": "   "},
    ],
)
def test_far_requires_academic_year(wire):
    result = _parse(employeeId="1", outputFormat="pdf", **wire)

    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert "academicYear" in result.error.detail


# ---------------------------------------------------------------------------
# Debug formats
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("fmt", ["rawxml", "xml"])
def test_debug_formats_need_debug_flag(fmt):
    assert not _parse(employeeId="1", outputFormat=fmt).ok

    allowed = _parse(debug_xml=True, employeeId="1", outputFormat=fmt.upper())
    assert allowed.ok
    assert allowed.value.is_debug_format


def test_model_accepts_field_names_directly():
    settings = RequestSettings(employee_id="1", output_format="html")

    assert settings.output_format == "html"
    assert settings.is_debug_format is False
