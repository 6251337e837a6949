"""
Unit tests for the conversion orchestrator.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from htmlpdf_backend.errors import (
    ConversionFailure,
    MailDeliveryError,
    NotFoundError,
    RenderFailure,
    ValidationError,
)
from htmlpdf_backend.renderer import RenderOptions

from .conftest import FAKE_PDF


class TestConvert:
    def test_convert_renders_stores_and_links(self, service, renderer, store, registry):
        result = asyncio.run(service.convert("<p>hi</p>"))

        assert renderer.calls[0][0] == "<p>hi</p>"
        assert store.get(result.document.document_id).path.read_bytes() == FAKE_PDF
        assert result.link.target_id == result.document.document_id
        assert result.link.link_id in registry
        assert result.download_url == f"http://testserver/api/download/{result.document.document_id}"
        assert result.link_url == f"http://testserver/link/{result.link.link_id}"

    def test_default_expiration_is_seven_days(self, service):
        result = asyncio.run(service.convert("<p>hi</p>"))
        assert result.link.expires_at - result.link.created_at == timedelta(days=7)

    def test_custom_expiration_days(self, service):
        result = asyncio.run(service.convert("<p>hi</p>", expiration_days=3))
        assert result.link.expires_at - result.link.created_at == timedelta(days=3)

    def test_passes_render_options_through(self, service, renderer):
        options = RenderOptions(page_format="Legal", margin="2cm", footer_template="<span class='pageNumber'></span>")
        asyncio.run(service.convert("<p>hi</p>", options))
        assert renderer.calls[0][1] is options

    @pytest.mark.parametrize("html", [None, "", "   \n"])
    def test_empty_html_fails_before_rendering(self, service, renderer, registry, store, html):
        with pytest.raises(ValidationError):
            asyncio.run(service.convert(html))

        assert renderer.calls == []
        assert len(registry) == 0
        assert store.list_documents() == []

    @pytest.mark.parametrize("days", [0, -3])
    def test_rejects_non_positive_expiration(self, service, renderer, days):
        with pytest.raises(ValidationError):
            asyncio.run(service.convert("<p>hi</p>", expiration_days=days))
        assert renderer.calls == []

    def test_render_failure_leaves_nothing_behind(self, service, renderer, registry, store):
        renderer.error = RenderFailure("Rendering failed: chromium crashed")

        with pytest.raises(ConversionFailure) as exc_info:
            asyncio.run(service.convert("<p>hi</p>"))

        assert isinstance(exc_info.value.__cause__, RenderFailure)
        assert len(registry) == 0
        assert store.list_documents() == []

    def test_filename_hint_is_sanitized(self, service):
        result = asyncio.run(service.convert("<p>hi</p>", filename="../Invoice 2025"))
        assert result.document.filename == "_Invoice 2025.pdf"

    def test_filename_defaults_to_document_id(self, service):
        result = asyncio.run(service.convert("<p>hi</p>"))
        assert result.document.filename == f"{result.document.document_id}.pdf"


class TestShareByEmail:
    def _convert(self, service):
        return asyncio.run(service.convert("<p>hi</p>"))

    def test_mints_a_new_link_per_request(self, service, registry):
        result = self._convert(service)

        link, url = asyncio.run(service.share_by_email(result.document.document_id, "a@example.com"))

        assert link.link_id != result.link.link_id
        assert link.target_id == result.document.document_id
        assert link.download_count == 0
        assert url == f"http://testserver/link/{link.link_id}"
        assert len(registry) == 2

    @pytest.mark.parametrize("file_id,email", [(None, "a@example.com"), ("x", None), ("", "")])
    def test_requires_file_id_and_email(self, service, file_id, email):
        with pytest.raises(ValidationError):
            asyncio.run(service.share_by_email(file_id, email))

    @pytest.mark.parametrize("email", ["a@example.com\r\nBcc: x@evil.com", "a@example.com, b@example.com", "nobody"])
    def test_rejects_malformed_email_before_minting(self, service, registry, email):
        result = self._convert(service)

        with pytest.raises(ValidationError):
            asyncio.run(service.share_by_email(result.document.document_id, email))
        assert len(registry) == 1

    def test_unknown_document_is_not_found(self, service, registry):
        with pytest.raises(NotFoundError):
            asyncio.run(service.share_by_email("0b7f4a3c-5d7e-4a2b-9c1d-2e3f4a5b6c7d", "a@example.com"))
        assert len(registry) == 0

    def test_mail_failure_does_not_fail_request(self, service, registry):
        result = self._convert(service)
        service.mailer.send_share_link = AsyncMock(side_effect=MailDeliveryError("smtp down"))

        link, _ = asyncio.run(service.share_by_email(result.document.document_id, "a@example.com", "hello"))

        assert link.link_id in registry
        service.mailer.send_share_link.assert_awaited_once()
        args = service.mailer.send_share_link.await_args.args
        assert args[0] == "a@example.com"
        assert args[3] == "hello"
