"""
Tests for the Playwright renderer adapter.

Playwright is mocked; these check the options we hand to Chromium and the
error wrapping, not actual PDF output.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from htmlpdf_backend.errors import RenderFailure, ValidationError
from htmlpdf_backend.renderer import RenderOptions, render_pdf


def _mock_playwright(mock_playwright, pdf=b"%PDF-1.4 fake pdf content", pdf_error=None, launch_error=None):
    mock_page = MagicMock()
    mock_page.set_content = AsyncMock()
    mock_page.pdf = AsyncMock(return_value=pdf, side_effect=pdf_error)
    mock_browser = MagicMock()
    mock_browser.new_page = AsyncMock(return_value=mock_page)
    mock_browser.close = AsyncMock()
    launch = AsyncMock(return_value=mock_browser, side_effect=launch_error)
    mock_playwright.return_value.__aenter__ = AsyncMock(
        return_value=MagicMock(chromium=MagicMock(launch=launch))
    )
    return launch, mock_browser, mock_page


class TestRenderOptions:
    def test_defaults(self):
        options = RenderOptions()
        assert options.page_format == "A4"
        assert options.margin == "1cm"
        assert options.display_header_footer is False

    @pytest.mark.parametrize("page_format", ["A4", "Letter", "Legal", "Tabloid"])
    def test_accepts_known_formats(self, page_format):
        assert RenderOptions(page_format=page_format).page_format == page_format

    def test_rejects_unknown_format(self):
        with pytest.raises(ValidationError):
            RenderOptions(page_format="A3")

    def test_rejects_unknown_margin(self):
        with pytest.raises(ValidationError):
            RenderOptions(margin="5in")

    def test_margin_applies_to_all_sides(self):
        kwargs = RenderOptions(margin="0.5cm").pdf_kwargs()
        assert kwargs["margin"] == {"top": "0.5cm", "right": "0.5cm", "bottom": "0.5cm", "left": "0.5cm"}
        assert kwargs["print_background"] is True

    def test_footer_enables_header_footer_display(self):
        kwargs = RenderOptions(footer_template="<span class='pageNumber'></span>").pdf_kwargs()
        assert kwargs["display_header_footer"] is True
        assert kwargs["header_template"] == ""


class TestRenderPdf:
    @patch("htmlpdf_backend.renderer.async_playwright")
    def test_render_returns_pdf_bytes(self, mock_playwright):
        launch, browser, page = _mock_playwright(mock_playwright)

        result = asyncio.run(render_pdf("<h1>Test</h1>", RenderOptions(page_format="Letter")))

        assert result.startswith(b"%PDF")
        page.set_content.assert_awaited_once_with("<h1>Test</h1>", wait_until="networkidle")
        assert page.pdf.await_args.kwargs["format"] == "Letter"
        assert launch.await_args.kwargs["headless"] is True
        browser.close.assert_awaited_once()

    @patch("htmlpdf_backend.renderer.async_playwright")
    def test_pdf_error_becomes_render_failure_and_closes_browser(self, mock_playwright):
        _, browser, _ = _mock_playwright(mock_playwright, pdf_error=asyncio.TimeoutError())

        with pytest.raises(RenderFailure) as exc_info:
            asyncio.run(render_pdf("<h1>Test</h1>"))

        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)
        browser.close.assert_awaited_once()

    @patch("htmlpdf_backend.renderer.async_playwright")
    def test_launch_error_becomes_render_failure(self, mock_playwright):
        _mock_playwright(mock_playwright, launch_error=RuntimeError("Executable doesn't exist"))

        with pytest.raises(RenderFailure) as exc_info:
            asyncio.run(render_pdf("<h1>Test</h1>"))

        assert "Executable doesn't exist" in exc_info.value.message
