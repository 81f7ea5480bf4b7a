"""
Word-processing documents from rendered HTML.

python-docx has no HTML import, so the rendered report is walked with
BeautifulSoup and rebuilt as paragraphs, lists and tables. Only the
structures the report templates emit are mapped: headings, paragraphs,
lists, tables, line breaks and inline emphasis. Styles and scripts are
ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional, Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from docx import Document
from docx.document import Document as DocxDocument
from docx.enum.section import WD_ORIENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.section import Section
from docx.shared import Inches, Pt, Twips
from docx.table import _Cell
from docx.text.paragraph import Paragraph

from ecv.app.config import DocumentLayout
from ecv.app.services.footer import FooterSpec
from ecv.app.services.page_renderer import Orientation


Container = Union[DocxDocument, _Cell]

LETTER_SHORT = Inches(8.5)
LETTER_LONG = Inches(11)

HEADINGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
SKIPPED = {"head", "title", "style", "script", "meta", "link"}
INLINE = {"a", "b", "strong", "i", "em", "u", "sub", "sup", "span", "br", "small", "code"}

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class _Format:
    bold: bool = False
    italic: bool = False
    underline: bool = False
    superscript: bool = False
    subscript: bool = False

    def with_tag(self, name: str) -> "_Format":
        if name in ("b", "strong", "th"):
            return replace(self, bold=True)
        if name in ("i", "em"):
            return replace(self, italic=True)
        if name == "u":
            return replace(self, underline=True)
        if name == "sup":
            return replace(self, superscript=True)
        if name == "sub":
            return replace(self, subscript=True)
        return self


# ----------------------------------------------------------------------
# Page layout
# ----------------------------------------------------------------------

def apply_page_layout(section: Section, layout: DocumentLayout, orientation: Orientation) -> None:
    margin = Twips(layout.docx_margin_twips)
    section.top_margin = margin
    section.bottom_margin = margin
    section.left_margin = margin
    section.right_margin = margin

    if orientation == "landscape":
        section.orientation = WD_ORIENT.LANDSCAPE
        section.page_width, section.page_height = LETTER_LONG, LETTER_SHORT
    else:
        section.orientation = WD_ORIENT.PORTRAIT
        section.page_width, section.page_height = LETTER_SHORT, LETTER_LONG


# ----------------------------------------------------------------------
# Footer
# ----------------------------------------------------------------------

def _add_field(paragraph: Paragraph, instruction: str, placeholder: str):
    """Append a field (DATE, PAGE, ...) with a cached display value."""
    run = paragraph.add_run()

    begin = OxmlElement("w:fldChar")
    begin.set(qn("w:fldCharType"), "begin")

    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = f" {instruction} "

    separate = OxmlElement("w:fldChar")
    separate.set(qn("w:fldCharType"), "separate")

    cached = OxmlElement("w:t")
    cached.text = placeholder

    end = OxmlElement("w:fldChar")
    end.set(qn("w:fldCharType"), "end")

    for element in (begin, instr, separate, cached, end):
        run._r.append(element)
    return run


def add_footer(document: DocxDocument, footer: FooterSpec) -> None:
    """Attach the three-zone footer table to every section."""
    font_size = Pt(footer.font_size)
    widths = [Twips(w) for w in footer.column_widths]

    for section in document.sections:
        container = section.footer
        container.is_linked_to_previous = False

        table = container.add_table(
            rows=1, cols=3, width=Twips(sum(footer.column_widths))
        )
        table.autofit = False
        cells = table.rows[0].cells

        for cell, width in zip(cells, widths):
            cell.width = width

        date_para = cells[0].paragraphs[0]
        date_para.alignment = WD_ALIGN_PARAGRAPH.LEFT
        date_run = _add_field(date_para, 'DATE \\@ "yyyy-MM-dd"', footer.date)

        text_para = cells[1].paragraphs[0]
        text_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        text_run = text_para.add_run(footer.text)

        page_para = cells[2].paragraphs[0]
        page_para.alignment = WD_ALIGN_PARAGRAPH.RIGHT
        page_run = _add_field(page_para, "PAGE", "1")

        for run in (date_run, text_run, page_run):
            run.font.name = footer.font_name
            run.font.size = font_size

        # A table may not end a footer part.
        container.add_paragraph()
        for paragraph in container.paragraphs:
            if not paragraph.text:
                paragraph.paragraph_format.space_after = Pt(0)


# ----------------------------------------------------------------------
# HTML embedding
# ----------------------------------------------------------------------

class HtmlEmbedder:
    """Rebuilds rendered report HTML inside a python-docx container."""

    def embed(self, document: DocxDocument, html: str) -> None:
        soup = BeautifulSoup(html, "html.parser")
        self._blocks(document, soup.body or soup)

    def _blocks(self, container: Container, node: Tag) -> None:
        paragraph: Optional[Paragraph] = None

        for child in node.children:
            if isinstance(child, Comment):
                continue
            if isinstance(child, NavigableString):
                if not str(child).strip():
                    continue
                if paragraph is None:
                    paragraph = container.add_paragraph()
                self._inline(paragraph, child, _Format())
                continue
            if not isinstance(child, Tag) or child.name in SKIPPED:
                continue

            if child.name in INLINE:
                if paragraph is None:
                    paragraph = container.add_paragraph()
                self._inline(paragraph, child, _Format())
                continue

            paragraph = None
            name = child.name

            if name in HEADINGS:
                p = container.add_paragraph(style=f"Heading {HEADINGS[name]}")
                self._inline_children(p, child, _Format())
            elif name == "p":
                p = container.add_paragraph()
                self._inline_children(p, child, _Format())
            elif name in ("ul", "ol"):
                self._list(container, child, level=1)
            elif name == "table":
                self._table(container, child)
            else:
                self._blocks(container, child)

    def _list(self, container: Container, node: Tag, level: int) -> None:
        base = "List Number" if node.name == "ol" else "List Bullet"
        style = base if level == 1 else f"{base} {min(level, 3)}"

        for item in node.find_all("li", recursive=False):
            p = container.add_paragraph(style=style)
            for child in item.children:
                if isinstance(child, Tag) and child.name in ("ul", "ol"):
                    self._list(container, child, level + 1)
                else:
                    self._inline(p, child, _Format())

    def _table(self, container: Container, node: Tag) -> None:
        rows = [tr for tr in node.find_all("tr") if tr.find_parent("table") is node]
        if not rows:
            return
        width = max(len(tr.find_all(["td", "th"], recursive=False)) for tr in rows)
        if width == 0:
            return

        table = container.add_table(rows=len(rows), cols=width)
        table.style = "Table Grid"

        for row, tr in zip(table.rows, rows):
            for cell, td in zip(row.cells, tr.find_all(["td", "th"], recursive=False)):
                fmt = _Format().with_tag(td.name)
                self._inline_children(cell.paragraphs[0], td, fmt)

    def _inline_children(self, paragraph: Paragraph, node: Tag, fmt: _Format) -> None:
        for child in node.children:
            self._inline(paragraph, child, fmt)

    def _inline(self, paragraph: Paragraph, node, fmt: _Format) -> None:
        if isinstance(node, Comment):
            return
        if isinstance(node, NavigableString):
            text = _WHITESPACE.sub(" ", str(node))
            if not paragraph.runs:
                text = text.lstrip()
            if text:
                run = paragraph.add_run(text)
                run.bold = fmt.bold or None
                run.italic = fmt.italic or None
                run.underline = fmt.underline or None
                if fmt.superscript:
                    run.font.superscript = True
                if fmt.subscript:
                    run.font.subscript = True
            return
        if not isinstance(node, Tag) or node.name in SKIPPED:
            return

        if node.name == "br":
            paragraph.add_run().add_break()
            return

        # Block content flattened into one paragraph (table cells, list items).
        if node.name in ("p", "div", "li", "ul", "ol") and paragraph.runs:
            paragraph.add_run().add_break()

        self._inline_children(paragraph, node, fmt.with_tag(node.name))

        if node.name == "a":
            href = (node.get("href") or "").strip()
            if href and href != node.get_text(strip=True):
                paragraph.add_run(f" ({href})")


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def build_docx(
    html: str,
    footer: FooterSpec,
    layout: DocumentLayout,
    orientation: Orientation = "portrait",
) -> DocxDocument:
    document = Document()
    apply_page_layout(document.sections[0], layout, orientation)
    HtmlEmbedder().embed(document, html)
    add_footer(document, footer)
    return document
