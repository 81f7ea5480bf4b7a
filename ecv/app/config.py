"""
Centralized configuration for the document engine.

Pydantic v2 settings management: strict validation, secrets redacted
from logs, fast failure on invalid configuration.

Page layout (margins, zoom, footer typography) is NOT ambient. It lives
in ``DocumentLayout`` and is injected explicitly into the footer
generator and the document converter.
"""

from pathlib import Path
from typing import Annotated, Optional, Tuple

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_ROOT = Path(__file__).resolve().parent


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

SensitiveEnv = Annotated[
    SecretStr,
    Field(description="Sensitive credential, redacted from logs"),
]


# -------------------------------------------------------------------------
# Layout
# -------------------------------------------------------------------------

class DocumentLayout(BaseModel):
    """
    Page and footer geometry shared by both conversion backends.
    """

    page_size: str = "Letter"
    zoom: float = Field(1.15, gt=0)
    margin_mm: int = Field(25, ge=0)

    # Word-processing margins in twentieths of a point (1440 = one inch).
    docx_margin_twips: int = Field(1440, ge=0)

    footer_font_name: str = "Arial"
    footer_font_size: int = Field(11, ge=1, description="Points")
    footer_spacing: int = Field(5, ge=0, description="Millimetres above footer")

    # Date, text, page number. Twentieths of a point.
    footer_column_widths: Tuple[int, int, int] = (1400, 5400, 1400)

    model_config = ConfigDict(frozen=True)


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.
    """

    # ---------------------------------------------------------------------
    # Upstream record source
    # ---------------------------------------------------------------------

    record_source_url: Annotated[
        AnyHttpUrl,
        Field(
            default="http://localhost:8080/ecv/",
            description="Base URL of the record-system XML service",
        ),
    ]
    record_source_username: str = ""
    record_source_password: SensitiveEnv = SecretStr("")
    record_source_verify_tls: bool = True
    record_source_timeout_seconds: float = Field(60.0, gt=0)
    record_source_retry_attempts: int = Field(3, ge=1, le=10)

    # ---------------------------------------------------------------------
    # Service authentication (HTTP Basic)
    # ---------------------------------------------------------------------

    auth_username: str = ""
    auth_password: SensitiveEnv = SecretStr("")

    # ---------------------------------------------------------------------
    # Feature flags
    # ---------------------------------------------------------------------

    debug_xml: Annotated[
        bool,
        Field(
            default=False,
            description="Allow the rawxml and xml debug output formats",
        ),
    ]

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------

    organization: str = "MacEwan"
    temp_dir: Path = Path("/tmp/ecv")
    template_dir: Path = PACKAGE_ROOT / "templates"
    transform_path: Path = PACKAGE_ROOT / "transforms" / "ecv.xsl"
    wkhtmltopdf_path: str = "wkhtmltopdf"
    render_timeout_seconds: Optional[float] = Field(120.0, gt=0)

    layout: DocumentLayout = DocumentLayout()

    # ---------------------------------------------------------------------
    # Server
    # ---------------------------------------------------------------------

    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="ECV_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )
