"""
Page-oriented rendering backend.

The pipeline depends only on the ``PageRenderer`` capability:

    render(html, options) -> Path

``WkhtmltopdfRenderer`` is the production implementation. It pipes the
HTML to ``wkhtmltopdf`` on standard input and expects the PDF to appear
at ``options.output_path`` as a side effect. Tests substitute their own
renderer.

If content has tables and a footer, the HTML must carry these print
rules or table rows overlap the footer when a table spans pages::

    thead { display: table-header-group; }
    tfoot { display: table-row-group; }
    tr { page-break-inside: avoid; }

The print handler injects them.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Protocol

from ecv.app.config import DocumentLayout
from ecv.app.services.footer import FooterSpec

logger = logging.getLogger("ecv.page_renderer")

Orientation = Literal["portrait", "landscape"]


class PageRenderError(RuntimeError):
    """Raised when the backend cannot produce the requested file."""


@dataclass(frozen=True)
class PageOptions:
    output_path: Path
    footer: FooterSpec
    orientation: Orientation = "portrait"
    page_offset: int = 0


class PageRenderer(Protocol):
    def render(self, html: str, options: PageOptions) -> Path:
        ...


class WkhtmltopdfRenderer:
    def __init__(
        self,
        layout: DocumentLayout,
        executable: str = "wkhtmltopdf",
        timeout: Optional[float] = 120.0,
    ) -> None:
        self._layout = layout
        self._executable = executable
        self._timeout = timeout

    def command(self, options: PageOptions) -> List[str]:
        layout = self._layout
        margin = f"{layout.margin_mm}mm"
        orientation = "Landscape" if options.orientation == "landscape" else "Portrait"
        return [
            self._executable,
            "--print-media-type",
            "-O", orientation,
            "--page-offset", str(options.page_offset),
            "--page-size", layout.page_size,
            "--zoom", f"{layout.zoom:g}",
            "-B", margin,
            "-L", margin,
            "-R", margin,
            "-T", margin,
            *options.footer.wkhtmltopdf_args(),
            "-",
            str(options.output_path),
        ]

    def render(self, html: str, options: PageOptions) -> Path:
        command = self.command(options)
        logger.info(
            "wkhtmltopdf_invoked",
            extra={
                "orientation": options.orientation,
                "page_offset": options.page_offset,
                "output_path": str(options.output_path),
            },
        )

        try:
            process = subprocess.run(
                command,
                input=html.encode("utf-8"),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise PageRenderError(
                f"wkhtmltopdf could not be started: {exc}"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise PageRenderError(
                f"wkhtmltopdf timed out after {self._timeout}s"
            ) from exc
        except OSError as exc:
            # Broken pipe while feeding standard input lands here.
            raise PageRenderError(
                f"Failed to pipe HTML to wkhtmltopdf: {exc}"
            ) from exc

        if process.returncode != 0:
            # wkhtmltopdf exits 1 on recoverable network errors but still
            # writes the file; the file check below decides.
            logger.warning(
                "wkhtmltopdf_nonzero_exit",
                extra={
                    "returncode": process.returncode,
                    "stderr": process.stderr.decode("utf-8", errors="ignore")[-2000:],
                },
            )

        if not options.output_path.exists():
            raise PageRenderError(
                "wkhtmltopdf reported completion, but no PDF output was produced."
            )

        return options.output_path
