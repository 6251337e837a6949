"""Conversion orchestration: render, store, mint a share link.

``ConversionService`` is built once per app and holds the document store,
the link registry, the renderer callable and the mailer. Route handlers call
into it and translate ``HtmlPdfError`` subclasses into HTTP responses.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .config import BASE_URL, DEFAULT_EXPIRATION_DAYS, PDF_SUFFIX
from .errors import ConversionFailure, MailDeliveryError, NotFoundError, RenderFailure, ValidationError
from .links import LinkRegistry, ShareLink
from .mailer import Mailer
from .renderer import RenderOptions, render_pdf
from .security import is_plain_email_address, new_identifier, normalize_identifier, sanitize_filename
from .storage import DocumentStore, RenderedDocument


logger = logging.getLogger(__name__)

Renderer = Callable[[str, RenderOptions], Awaitable[bytes]]


@dataclass(frozen=True)
class ConversionResult:
    document: RenderedDocument
    link: ShareLink
    download_url: str
    link_url: str


class ConversionService:
    def __init__(
        self,
        store: DocumentStore,
        links: LinkRegistry,
        renderer: Renderer = render_pdf,
        base_url: str = BASE_URL,
        mailer: Optional[Mailer] = None,
    ) -> None:
        self.store = store
        self.links = links
        self.renderer = renderer
        self.base_url = base_url.rstrip("/")
        self.mailer = mailer or Mailer()

    def download_url(self, document_id: str) -> str:
        return f"{self.base_url}/api/download/{document_id}"

    def link_url(self, link_id: str) -> str:
        return f"{self.base_url}/link/{link_id}"

    async def convert(
        self,
        html: Optional[str],
        options: Optional[RenderOptions] = None,
        expiration_days: Optional[int] = None,
        filename: Optional[str] = None,
    ) -> ConversionResult:
        if not html or not html.strip():
            raise ValidationError("HTML content is required")
        days = DEFAULT_EXPIRATION_DAYS if expiration_days is None else expiration_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValidationError("expirationDays must be a positive integer")

        document_id = new_identifier()
        try:
            pdf_bytes = await self.renderer(html, options or RenderOptions())
        except RenderFailure as e:
            raise ConversionFailure("Failed to convert HTML to PDF") from e

        fallback_name = f"{document_id}{PDF_SUFFIX}"
        document = self.store.save(document_id, pdf_bytes, sanitize_filename(filename, fallback_name))
        link = self.links.create(document.document_id, days)

        logger.info("PDF generated: %s%s", document.document_id, PDF_SUFFIX)
        return ConversionResult(
            document=document,
            link=link,
            download_url=self.download_url(document.document_id),
            link_url=self.link_url(link.link_id),
        )

    async def share_by_email(
        self,
        document_id: Optional[str],
        email: Optional[str],
        message: Optional[str] = None,
    ) -> tuple[ShareLink, str]:
        """Mint a fresh link for an existing document and email it.

        Every call creates a new link with its own download counter. Mail
        failures are logged only; the link is already live at that point.
        """
        if not document_id or not email:
            raise ValidationError("File ID and email are required")
        if not is_plain_email_address(email):
            raise ValidationError("Invalid email address")
        try:
            did = normalize_identifier(document_id)
        except ValueError:
            raise NotFoundError("File not found")
        if not self.store.exists(did):
            raise NotFoundError("File not found")

        link = self.links.create(did, DEFAULT_EXPIRATION_DAYS)
        url = self.link_url(link.link_id)
        try:
            await self.mailer.send_share_link(email, url, DEFAULT_EXPIRATION_DAYS, message)
        except MailDeliveryError as e:
            logger.error("Email sending error: %s", e)
        return link, url
