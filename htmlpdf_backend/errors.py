"""Error taxonomy shared by the backend and the HTTP layer.

Each error carries the HTTP status it maps to; ``server.py`` turns any
``HtmlPdfError`` into ``{"error": message}`` with that status.
"""
from __future__ import annotations


class HtmlPdfError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(HtmlPdfError):
    status_code = 400


class UnauthorizedError(HtmlPdfError):
    status_code = 401


class NotFoundError(HtmlPdfError):
    status_code = 404


class LinkInvalidError(HtmlPdfError):
    """The link exists but has expired or used up its downloads."""

    status_code = 410


class PayloadTooLargeError(HtmlPdfError):
    status_code = 413


class RenderFailure(HtmlPdfError):
    status_code = 500


class ConversionFailure(HtmlPdfError):
    status_code = 500


class MailDeliveryError(HtmlPdfError):
    status_code = 502
