"""
End-to-end document runs through the pipeline.

The page renderer is faked; everything else is real: XSLT transform,
sanitizing, Jinja rendering, section splitting, python-docx building and
pikepdf merging.

Verifies that:
- A standard run converts once, portrait, from page 1
- A FAR run converts sections in order with cumulative page offsets
- Every failure leaves no file behind
- Debug formats and caller-supplied XML bypass the right stages
"""

import httpx
import pytest
from docx import Document
from docx.enum.section import WD_ORIENT

from ecv.app.errors import (
    ConversionError,
    FetchError,
    InternalError,
    MergeError,
    UpstreamClientError,
    ValidationError,
)
from ecv.app.pipeline.orchestrator import DocumentPipeline
from ecv.tests.fixtures.documents import (
    CANONICAL_XML,
    RAW_RECORD_XML,
    FakePageRenderer,
    build_pipeline,
    leftover_files,
    make_settings,
    page_widths,
    xml_handler,
)

FAR_PDF = {
    "employeeId": "12345",
    "ecvFormat": "far",
    "academicYear": "2023-2024",
    "outputFormat": "pdf",
}


def _refuse_fetch(request: httpx.Request) -> httpx.Response:
    raise AssertionError("record source must not be contacted")


# ---------------------------------------------------------------------------
# Standard report
# ---------------------------------------------------------------------------

def test_standard_pdf_is_one_portrait_job(tmp_path):
    settings = make_settings(tmp_path)
    renderer = FakePageRenderer([2])
    pipeline = build_pipeline(settings, renderer)

    result = pipeline.create_document(
        {"employeeId": "12345", "outputFormat": "pdf"}, trace_id="t-1"
    )

    produced = result.unwrap()
    assert produced.filename == "12345.pdf"
    assert produced.media_type == "application/pdf"
    assert renderer.offsets == [0]
    assert renderer.orientations == ["portrait"]
    assert len(page_widths(produced.path)) == 2

    html, options = renderer.calls[0]
    assert options.footer.text == "Jane Q Smith, MacEwan CV"
    assert '<section id="section">' not in html

    # Only the handed-off file outlives the run.
    assert leftover_files(settings) == [produced.path]


def test_standard_docx(tmp_path):
    settings = make_settings(tmp_path)
    renderer = FakePageRenderer()

    produced = build_pipeline(settings, renderer).create_document(
        {"employeeId": "12345", "outputFormat": "docx"}
    ).unwrap()

    assert produced.filename == "12345.docx"
    assert renderer.calls == []
    document = Document(str(produced.path))
    assert len(document.sections) == 1
    assert document.sections[0].orientation == WD_ORIENT.PORTRAIT


def test_standard_html(tmp_path):
    settings = make_settings(tmp_path)

    produced = build_pipeline(settings).create_document(
        {"employeeId": "12345", "outputFormat": "html"}
    ).unwrap()

    assert produced.filename == "12345.html"
    assert produced.media_type.startswith("text/html")
    html = produced.path.read_text(encoding="utf-8")
    assert "Jane Q Smith" in html
    assert "alert(1)" not in html


# ---------------------------------------------------------------------------
# FAR report
# ---------------------------------------------------------------------------

def test_far_pdf_sections_get_cumulative_offsets(tmp_path):
    settings = make_settings(tmp_path)
    renderer = FakePageRenderer([3, 5, 2])

    produced = build_pipeline(settings, renderer).create_document(FAR_PDF).unwrap()

    assert renderer.offsets == [0, 3, 8]
    assert renderer.orientations == ["portrait", "landscape", "portrait"]
    assert page_widths(produced.path) == [200] * 3 + [201] * 5 + [202] * 2
    assert produced.filename == "Faculty_Annual_Report-2023-2024-Jane_Q_Smith.pdf"
    assert leftover_files(settings) == [produced.path]


def test_far_sections_share_stylesheet_and_footer(tmp_path):
    settings = make_settings(tmp_path)
    renderer = FakePageRenderer()

    build_pipeline(settings, renderer).create_document(FAR_PDF).unwrap()

    footers = {options.footer.text for _, options in renderer.calls}
    assert footers == {"Jane Q Smith, FAR 2023-2024"}
    for html, _ in renderer.calls:
        assert 'media="print"' in html
    assert "Activity Summary" in renderer.calls[1][0]


def test_far_docx_is_merged_with_landscape_summary(tmp_path):
    settings = make_settings(tmp_path)

    produced = build_pipeline(settings).create_document(
        dict(FAR_PDF, outputFormat="docx")
    ).unwrap()

    assert produced.filename == "Faculty_Annual_Report-2023-2024-Jane_Q_Smith.docx"
    orientations = [s.orientation for s in Document(str(produced.path)).sections]
    assert orientations == [WD_ORIENT.PORTRAIT, WD_ORIENT.LANDSCAPE, WD_ORIENT.PORTRAIT]
    assert leftover_files(settings) == [produced.path]


def test_far_type_and_format_docx(tmp_path):
    settings = make_settings(tmp_path)
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return xml_handler()(request)

    produced = build_pipeline(settings, handler=handler).create_document(
        {
            "employeeId": "12345",
            "ecvType": "far",
            "academicYear": "2023",
            "ecvFormat": "far",
            "outputFormat": "docx",
        }
    ).unwrap()

    assert urls == ["http://records.test/ecv/far/12345/2023"]
    assert produced.filename == "Faculty_Annual_Report-2023-Jane_Q_Smith.docx"
    sections = Document(str(produced.path)).sections
    assert sections[1].orientation == WD_ORIENT.LANDSCAPE


def test_far_html_is_not_split(tmp_path):
    settings = make_settings(tmp_path)
    renderer = FakePageRenderer()

    produced = build_pipeline(settings, renderer).create_document(
        dict(FAR_PDF, outputFormat="html")
    ).unwrap()

    assert renderer.calls == []
    assert produced.path.read_text(encoding="utf-8").count('<section id="section">') == 4
    assert produced.filename == "Faculty_Annual_Report-2023-2024-Jane_Q_Smith.html"


# ---------------------------------------------------------------------------
# Failures leave nothing behind
# ---------------------------------------------------------------------------

def test_invalid_settings_stop_before_fetch(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings, handler=_refuse_fetch)

    result = pipeline.create_document({"employeeId": "12345", "ecvFormat": "far", "outputFormat": "pdf"})

    assert isinstance(result.error, ValidationError)
    assert leftover_files(settings) == []


def test_empty_upstream_body(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings, handler=xml_handler(body=b""))

    result = pipeline.create_document({"employeeId": "12345", "outputFormat": "pdf"})

    assert type(result.error) is FetchError
    assert leftover_files(settings) == []


def test_pipeline_without_record_source(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = DocumentPipeline.from_settings(settings, page_renderer=FakePageRenderer())

    result = pipeline.create_document({"employeeId": "12345", "outputFormat": "pdf"})

    assert type(result.error) is FetchError
    assert leftover_files(settings) == []


def test_upstream_rejection(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings, handler=xml_handler(body=b"missing", status_code=404))

    result = pipeline.create_document({"employeeId": "12345", "outputFormat": "pdf"})

    assert isinstance(result.error, UpstreamClientError)


def test_failed_far_section_discards_earlier_sections(tmp_path):
    settings = make_settings(tmp_path)
    renderer = FakePageRenderer([2, 2, 2], fail_on=1)

    result = build_pipeline(settings, renderer).create_document(FAR_PDF)

    assert isinstance(result.error, ConversionError)
    assert len(renderer.calls) == 2
    assert leftover_files(settings) == []


def test_failed_docx_merge_leaves_nothing_behind(tmp_path, monkeypatch):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings)
    merge_docx = pipeline._merger.merge_docx

    def corrupt_then_merge(artifacts, destination, **kwargs):
        artifacts[1].path.write_bytes(b"truncated")
        return merge_docx(artifacts, destination, **kwargs)

    monkeypatch.setattr(pipeline._merger, "merge_docx", corrupt_then_merge)

    result = pipeline.create_document(dict(FAR_PDF, outputFormat="docx"))

    assert isinstance(result.error, MergeError)
    assert leftover_files(settings) == []


def test_unexpected_exception_becomes_internal_error(tmp_path, monkeypatch):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings)

    def explode(*args, **kwargs):
        raise KeyError("surprise")

    monkeypatch.setattr(pipeline._splitter, "split", explode)

    result = pipeline.create_document(FAR_PDF)

    assert isinstance(result.error, InternalError)
    assert "surprise" not in str(result.error)
    assert leftover_files(settings) == []


# ---------------------------------------------------------------------------
# Debug formats and supplied XML
# ---------------------------------------------------------------------------

def test_rawxml_returns_upstream_bytes(tmp_path):
    settings = make_settings(tmp_path, debug_xml=True)

    produced = build_pipeline(settings).create_document(
        {"employeeId": "12345", "outputFormat": "rawxml"}
    ).unwrap()

    assert produced.filename == "12345-raw.xml"
    assert produced.path.read_bytes() == RAW_RECORD_XML


def test_xml_returns_canonical_document(tmp_path):
    settings = make_settings(tmp_path, debug_xml=True)

    produced = build_pipeline(settings).create_document(
        {"employeeId": "12345", "outputFormat": "xml"}
    ).unwrap()

    assert produced.filename == "12345.xml"
    canonical = produced.path.read_text(encoding="utf-8")
    assert "<ecv>" in canonical
    # Debug output is not sanitized.
    assert "<script>" in canonical


def test_debug_formats_rejected_when_disabled(tmp_path):
    settings = make_settings(tmp_path)

    result = build_pipeline(settings).create_document(
        {"employeeId": "12345", "outputFormat": "rawxml"}
    )

    assert isinstance(result.error, ValidationError)


def test_supplied_raw_xml_skips_fetch(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings, handler=_refuse_fetch)

    produced = pipeline.create_document(
        {"employeeId": "12345", "outputFormat": "html"}, raw_xml=RAW_RECORD_XML
    ).unwrap()

    assert "CMPT 200" in produced.path.read_text(encoding="utf-8")


def test_supplied_canonical_xml_skips_transform(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings, handler=_refuse_fetch)

    produced = pipeline.create_document(
        {"employeeId": "12345", "outputFormat": "html"}, canonical_xml=CANONICAL_XML
    ).unwrap()

    html = produced.path.read_text(encoding="utf-8")
    assert "Taught intro programming" in html
    # Structured content is rendered as its text only.
    assert "Syllabus v2" in html
    assert "<b>v2</b>" not in html


def test_structured_content_cannot_carry_script(tmp_path):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings, handler=_refuse_fetch)
    hostile = CANONICAL_XML.replace(
        "<p>Syllabus <b>v2</b></p>",
        '<p>Hi<script>alert("x")</script><img src="x" onerror="alert(2)"/></p>',
    )

    produced = pipeline.create_document(
        {"employeeId": "12345", "outputFormat": "html"}, canonical_xml=hostile
    ).unwrap()

    html = produced.path.read_text(encoding="utf-8")
    assert "<script>" not in html
    assert "onerror" not in html
    assert 'alert("x")' not in html


def test_rawxml_needs_raw_input(tmp_path):
    settings = make_settings(tmp_path, debug_xml=True)
    pipeline = build_pipeline(settings, handler=_refuse_fetch)

    result = pipeline.create_document(
        {"employeeId": "12345", "outputFormat": "rawxml"}, canonical_xml=CANONICAL_XML
    )

    assert isinstance(result.error, ValidationError)
    assert leftover_files(settings) == []


@pytest.mark.parametrize("fmt", ["pdf", "docx"])
def test_runs_do_not_share_workspaces(tmp_path, fmt):
    settings = make_settings(tmp_path)
    pipeline = build_pipeline(settings)
    wire = {"employeeId": "12345", "outputFormat": fmt}

    first = pipeline.create_document(wire).unwrap()
    second = pipeline.create_document(wire).unwrap()

    assert first.path != second.path
    assert sorted(leftover_files(settings)) == sorted([first.path, second.path])
