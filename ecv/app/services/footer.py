"""
Footer content shared by both conversion backends.

Every page carries a three-zone footer: the generation date on the left,
a label naming the subject in the centre, and the page number on the
right. The label is built here, once per run, and both the page renderer
and the word-processing builder draw the same ``FooterSpec``.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Callable, List, Tuple

from ecv.app.config import DocumentLayout
from ecv.app.schemas.request import RequestSettings


PAGE_TOKEN = "[page]"


@dataclass(frozen=True)
class FooterSpec:
    date: str
    text: str
    font_name: str
    font_size: int
    spacing: int
    column_widths: Tuple[int, int, int]
    page_token: str = PAGE_TOKEN

    def column_ratio(self) -> Tuple[float, float, float]:
        """Column widths relative to the date column."""
        base = self.column_widths[0]
        return tuple(round(w / base, 2) for w in self.column_widths)  # type: ignore[return-value]

    def wkhtmltopdf_args(self) -> List[str]:
        return [
            "--footer-font-name", self.font_name,
            "--footer-font-size", str(self.font_size),
            "--footer-spacing", str(self.spacing),
            "--footer-left", self.date,
            "--footer-center", self.text,
            "--footer-right", self.page_token,
        ]


class FooterGenerator:
    def __init__(
        self,
        layout: DocumentLayout,
        organization: str,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self._layout = layout
        self._organization = organization
        self._today = today

    def text(self, name: str, settings: RequestSettings) -> str:
        if settings.is_far:
            if settings.academic_year:
                return f"{name}, FAR {settings.academic_year}"
            return name
        return f"{name}, {self._organization} CV"

    def build(self, name: str, settings: RequestSettings) -> FooterSpec:
        layout = self._layout
        return FooterSpec(
            date=self._today().isoformat(),
            text=self.text(name, settings),
            font_name=layout.footer_font_name,
            font_size=layout.footer_font_size,
            spacing=layout.footer_spacing,
            column_widths=layout.footer_column_widths,
        )
