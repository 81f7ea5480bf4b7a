"""
Post-render print adjustments and artifact inspection.

The print handler runs after template rendering and may adjust the HTML
per report variant without touching templates. It also answers page
counts for PDF artifacts, which FAR page numbering depends on.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pikepdf
from bs4 import BeautifulSoup

logger = logging.getLogger("ecv.print_handler")


TABLE_PRINT_RULES = (
    "thead { display: table-header-group; }\n"
    "tfoot { display: table-row-group; }\n"
    "tr { page-break-inside: avoid; }\n"
)

FAR_PRINT_RULES = "section#section + section#section { page-break-before: always; }\n"


class PrintHandler:
    def adjust(self, ecv_format: str, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")

        rules = TABLE_PRINT_RULES
        if ecv_format == "far":
            rules += FAR_PRINT_RULES

            # Empty rows come from optional record fields; they print as
            # blank bands in the landscape table.
            for row in soup.select("tr.record-row"):
                if not row.get_text(strip=True):
                    row.decompose()

        style = soup.new_tag("style", attrs={"media": "print"})
        style.string = rules

        # FAR sections are converted separately; only the stylesheet
        # section travels with each of them.
        if ecv_format == "far":
            target = soup.find("section", id="section") or soup.head or soup
        else:
            target = soup.head or soup
        target.append(style)

        return str(soup)

    def page_count(self, pdf_path: Path) -> int:
        with pikepdf.open(pdf_path) as pdf:
            return len(pdf.pages)
