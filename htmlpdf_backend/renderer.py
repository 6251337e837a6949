from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import async_playwright

from .config import (
    CHROMIUM_EXECUTABLE,
    DEFAULT_MARGIN,
    DEFAULT_PAGE_FORMAT,
    MARGINS,
    NO_MARGIN,
    PAGE_FORMATS,
    RENDER_TIMEOUT_MS,
)
from .errors import RenderFailure, ValidationError


logger = logging.getLogger(__name__)

CHROMIUM_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


@dataclass(frozen=True)
class RenderOptions:
    page_format: str = DEFAULT_PAGE_FORMAT
    margin: str = DEFAULT_MARGIN
    header_template: str = ""
    footer_template: str = ""

    def __post_init__(self) -> None:
        if self.page_format not in PAGE_FORMATS:
            raise ValidationError(f"pageSize must be one of: {', '.join(PAGE_FORMATS)}")
        if self.margin not in MARGINS and self.margin != NO_MARGIN:
            raise ValidationError(f"margin must be one of: {', '.join(MARGINS)}")

    @property
    def display_header_footer(self) -> bool:
        return bool(self.header_template or self.footer_template)

    def pdf_kwargs(self) -> dict:
        """Keyword arguments for Playwright's ``page.pdf``."""
        return {
            "format": self.page_format,
            "margin": {side: self.margin for side in ("top", "right", "bottom", "left")},
            "print_background": True,
            "display_header_footer": self.display_header_footer,
            "header_template": self.header_template or "",
            "footer_template": self.footer_template or "",
        }


async def render_pdf(html: str, options: Optional[RenderOptions] = None) -> bytes:
    """Print HTML to PDF in a fresh headless Chromium.

    One browser per call; the page is printed once it reaches network idle.
    Any Playwright failure surfaces as ``RenderFailure``.
    """
    options = options or RenderOptions()
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(
                headless=True,
                args=CHROMIUM_ARGS,
                executable_path=CHROMIUM_EXECUTABLE,
            )
            try:
                page = await browser.new_page()
                if RENDER_TIMEOUT_MS > 0:
                    page.set_default_timeout(RENDER_TIMEOUT_MS)
                await page.set_content(html, wait_until="networkidle")
                pdf_bytes = await page.pdf(**options.pdf_kwargs())
            finally:
                await browser.close()
    except Exception as e:
        logger.error("PDF rendering failed: %s", e)
        raise RenderFailure(f"Rendering failed: {e}") from e

    logger.debug("Rendered %d byte PDF (format=%s, margin=%s)", len(pdf_bytes), options.page_format, options.margin)
    return pdf_bytes
