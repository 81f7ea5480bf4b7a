"""
Free-text sanitizing.

Only the allowed inline tags survive; other tags are unwrapped, scripts
and styles vanish with their content. Fields that already hold
structured content are not touched.
"""

import pytest

from ecv.app.schemas.document import CanonicalDocument, MarkupText, Record, RecordCategory
from ecv.app.services.sanitizer import ContentSanitizer, strip_markup


@pytest.mark.parametrize(
    "markup, expected",
    [
        ("plain text", "plain text"),
        ('<p onclick="x()">Hi <span>there</span></p>', "<p>Hi there</p>"),
        ("<div><b>bold</b> and <i>italic</i></div>", "<b>bold</b> and <i>italic</i>"),
        ("before<script>alert(1)</script>after", "beforeafter"),
        ("<style>p { color: red }</style><p>x</p>", "<p>x</p>"),
        ("keep<!-- hidden -->this", "keepthis"),
        ("<ul><li>one</li><li>two</li></ul>", "<ul><li>one</li><li>two</li></ul>"),
    ],
)
def test_strip_markup(markup, expected):
    assert strip_markup(markup) == expected


@pytest.mark.parametrize(
    "markup",
    [
        '<p>Taught <span class="x">intro</span> &amp; <b>more</b></p>',
        "<table><tr><td>cell</td></tr></table> tail",
        "a < b & c",
    ],
)
def test_strip_markup_is_idempotent(markup):
    once = strip_markup(markup)

    assert strip_markup(once) == once


def _document(description: MarkupText, deliverables: MarkupText) -> CanonicalDocument:
    record = Record(title="R", description=description, deliverables=deliverables)
    return CanonicalDocument(
        name="Jane",
        categories=[RecordCategory(code="C", heading="Cat", records=[record])],
    )


def test_sanitize_returns_new_document_and_skips_structured_fields():
    original = _document(
        description=MarkupText(value="<p>Hi <div>there</div></p>"),
        deliverables=MarkupText(value="<p>Keep <div>me</div></p>", structured=True),
    )

    cleaned = ContentSanitizer().sanitize(original)

    record = cleaned.records[0]
    assert record.description.value == "<p>Hi there</p>"
    assert record.deliverables.value == "<p>Keep <div>me</div></p>"
    assert record.deliverables.structured is True

    # Input is left as it was.
    assert original.records[0].description.value == "<p>Hi <div>there</div></p>"


def test_sanitize_twice_changes_nothing():
    document = _document(
        description=MarkupText(value="<em>x</em><font>y</font>"),
        deliverables=MarkupText(),
    )
    sanitizer = ContentSanitizer()

    once = sanitizer.sanitize(document)
    twice = sanitizer.sanitize(once)

    assert once == twice


def test_failed_field_is_kept_as_is(monkeypatch, caplog):
    document = _document(
        description=MarkupText(value="<p>x</p>"),
        deliverables=MarkupText(),
    )

    def explode(markup, allowed):
        raise RuntimeError("parser failure")

    monkeypatch.setattr("ecv.app.services.sanitizer.strip_markup", explode)

    with caplog.at_level("WARNING", logger="ecv.sanitizer"):
        cleaned = ContentSanitizer().sanitize(document)

    assert cleaned.records[0].description.value == "<p>x</p>"
    assert any(r.message == "sanitize_failed" for r in caplog.records)
