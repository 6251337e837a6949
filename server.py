from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, EmailStr
from starlette.exceptions import HTTPException as StarletteHTTPException

from htmlpdf_backend.config import (
    ALLOWED_ORIGINS,
    ALLOWED_UPLOAD_EXTS,
    API_KEY,
    BASE_URL,
    DEFAULT_MARGIN,
    DEFAULT_PAGE_FORMAT,
    DOCUMENTS_ROOT,
    LOG_LEVEL,
    MAX_UPLOAD_BYTES,
    NO_MARGIN,
    PORT,
    RENDER_TIMEOUT_MS,
)
from htmlpdf_backend.converter import ConversionResult, ConversionService
from htmlpdf_backend.errors import HtmlPdfError, NotFoundError, PayloadTooLargeError, UnauthorizedError, ValidationError
from htmlpdf_backend.links import LinkRegistry
from htmlpdf_backend.ratelimit import RateLimiter
from htmlpdf_backend.renderer import RenderOptions
from htmlpdf_backend.security import check_bearer_token, is_safe_basename
from htmlpdf_backend.storage import DocumentStore, RenderedDocument


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("htmlpdf.server")


class ConvertOptions(BaseModel):
    pageSize: Optional[str] = None
    margin: Optional[str] = None
    headerTemplate: Optional[str] = None
    footerTemplate: Optional[str] = None


class ConvertRequest(BaseModel):
    # Missing content is reported as 400 by the service, not as a schema error.
    htmlContent: Optional[str] = None
    options: Optional[ConvertOptions] = None
    expirationDays: Optional[int] = None


class SendEmailRequest(BaseModel):
    fileId: Optional[str] = None
    email: Optional[EmailStr] = None
    message: Optional[str] = None


class IntegrationConvertRequest(BaseModel):
    html_content: Optional[str] = None
    document_name: Optional[str] = None
    return_type: Optional[str] = None


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _size_label(size: int) -> str:
    return f"{round(size / 1024)} KB"


def _render_options(
    page_size: Optional[str] = None,
    margin: Optional[str] = None,
    header_template: Optional[str] = None,
    footer_template: Optional[str] = None,
) -> RenderOptions:
    return RenderOptions(
        page_format=page_size or DEFAULT_PAGE_FORMAT,
        margin=margin or DEFAULT_MARGIN,
        header_template=header_template or "",
        footer_template=footer_template or "",
    )


def _conversion_payload(result: ConversionResult) -> dict:
    return {
        "success": True,
        "fileId": result.document.document_id,
        "downloadLink": result.download_url,
        "linkId": result.link.link_id,
        "linkUrl": result.link_url,
        "expiresAt": _iso(result.link.expires_at),
    }


def _pdf_response(document: RenderedDocument) -> FileResponse:
    # FileResponse sets correct content-length; add nosniff for safety.
    return FileResponse(
        document.path,
        media_type="application/pdf",
        filename=document.filename,
        headers={"Cache-Control": "no-store", "X-Content-Type-Options": "nosniff"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Documents stored under %s", DOCUMENTS_ROOT)
    logger.info("  base_url=%s", BASE_URL)
    logger.info("  render_timeout=%sms", RENDER_TIMEOUT_MS)
    logger.info("  integration_auth_required=%s", bool(app.state.api_key))
    logger.info("  smtp_configured=%s", app.state.converter.mailer.configured)
    yield


app = FastAPI(title="HTML to PDF Service", lifespan=lifespan)

# The registry and store live for the process; handlers reach them via app.state.
app.state.converter = ConversionService(DocumentStore(DOCUMENTS_ROOT), LinkRegistry())
app.state.api_key = API_KEY
app.state.rate_limiter = RateLimiter()


@app.middleware("http")
async def _rate_limit(request: Request, call_next):
    if request.url.path.startswith("/api/") and request.method != "OPTIONS":
        limiter: RateLimiter = request.app.state.rate_limiter
        retry_after = limiter.hit(limiter.client_key(request))
        if retry_after is not None:
            logger.warning("Rate limit exceeded for %s", limiter.client_key(request))
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later"},
                headers={"Retry-After": str(retry_after)},
            )
    return await call_next(request)


@app.middleware("http")
async def _catch_unhandled_errors(request: Request, call_next):
    # Last line of defence: nothing a handler raises may take the process down.
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error processing %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Added last so it wraps the middlewares above and error responses carry CORS headers.
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HtmlPdfError)
async def _handle_service_error(request: Request, exc: HtmlPdfError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__)
    else:
        logger.warning("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(x) for x in first.get("loc", ()) if x != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.warning("Validation error on %s: %s", request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


def get_converter(request: Request) -> ConversionService:
    return request.app.state.converter


async def require_api_key(request: Request, authorization: Optional[str] = Header(None)) -> None:
    # Runs before the body is used, so a bad credential never triggers rendering.
    check_bearer_token(authorization, request.app.state.api_key)


async def require_listing_key(request: Request, authorization: Optional[str] = Header(None)) -> None:
    # Listing exposes every file id, so it is closed unless an API key is configured and presented.
    api_key = request.app.state.api_key
    if not api_key:
        raise UnauthorizedError("Document listing requires API_KEY to be configured")
    check_bearer_token(authorization, api_key)


@app.post("/api/convert")
async def convert(payload: ConvertRequest, converter: ConversionService = Depends(get_converter)) -> JSONResponse:
    options = payload.options or ConvertOptions()
    result = await converter.convert(
        payload.htmlContent,
        _render_options(options.pageSize, options.margin, options.headerTemplate, options.footerTemplate),
        payload.expirationDays,
    )
    return JSONResponse(_conversion_payload(result))


@app.post("/api/convert/upload")
async def convert_upload(
    file: UploadFile = File(...),
    pageSize: Optional[str] = Form(None),
    margin: Optional[str] = Form(None),
    expirationDays: Optional[int] = Form(None),
    converter: ConversionService = Depends(get_converter),
) -> JSONResponse:
    """Convert an uploaded .html file; same response as /api/convert."""
    name = file.filename or ""
    if not is_safe_basename(name) or Path(name).suffix.lower() not in ALLOWED_UPLOAD_EXTS:
        raise ValidationError("Only .html files can be converted")

    # Limit read to prevent accidental huge uploads.
    data = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise PayloadTooLargeError("File too large")
    try:
        html = data.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("HTML file must be UTF-8 encoded")

    result = await converter.convert(
        html,
        _render_options(pageSize, margin),
        expirationDays,
        filename=Path(name).stem,
    )
    return JSONResponse(_conversion_payload(result))


@app.get("/api/download/{file_id}")
async def download(file_id: str, converter: ConversionService = Depends(get_converter)) -> FileResponse:
    document = converter.store.get(file_id)
    logger.info("File downloaded: %s.pdf", document.document_id)
    return _pdf_response(document)


@app.get("/api/documents", dependencies=[Depends(require_listing_key)])
async def list_documents(converter: ConversionService = Depends(get_converter)) -> JSONResponse:
    documents = [
        {
            "fileId": d.document_id,
            "filename": d.filename,
            "size": _size_label(d.size),
            "createdAt": _iso(d.created_at),
        }
        for d in converter.store.list_documents()
    ]
    return JSONResponse({"documents": documents})


@app.get("/api/links/{link_id}")
async def link_info(link_id: str, converter: ConversionService = Depends(get_converter)) -> JSONResponse:
    try:
        status = converter.links.describe(link_id)
    except NotFoundError as e:
        return JSONResponse(status_code=404, content={"valid": False, "error": e.message})

    if not status.valid:
        return JSONResponse(
            status_code=410,
            content={"valid": True, "expired": True, "error": status.reason},
        )

    link = status.link
    document = converter.store.get(link.target_id)
    return JSONResponse(
        {
            "valid": True,
            "expired": False,
            "fileId": link.target_id,
            "filename": document.filename,
            "size": _size_label(document.size),
            "createdAt": _iso(document.created_at),
            "expiresAt": _iso(link.expires_at),
            "downloads": link.download_count,
            "maxDownloads": link.max_downloads,
        }
    )


@app.get("/api/links/{link_id}/download")
async def link_download(link_id: str, converter: ConversionService = Depends(get_converter)) -> FileResponse:
    """Download through a share link, counting one use."""
    link = converter.links.get(link_id)
    document = converter.store.get(link.target_id)
    converter.links.consume(link_id)
    logger.info("File downloaded via link %s: %s.pdf", link_id, document.document_id)
    return _pdf_response(document)


@app.post("/api/send-email")
async def send_email(payload: SendEmailRequest, converter: ConversionService = Depends(get_converter)) -> JSONResponse:
    link, url = await converter.share_by_email(payload.fileId, payload.email, payload.message)
    return JSONResponse(
        {
            "success": True,
            "message": "Email sent successfully",
            "linkId": link.link_id,
            "linkUrl": url,
        }
    )


@app.post("/api/n8n/convert", dependencies=[Depends(require_api_key)])
async def integration_convert(
    payload: IntegrationConvertRequest,
    converter: ConversionService = Depends(get_converter),
) -> JSONResponse:
    result = await converter.convert(
        payload.html_content,
        RenderOptions(margin=NO_MARGIN),
        filename=payload.document_name,
    )
    logger.info("PDF generated via n8n: %s.pdf", result.document.document_id)

    if payload.return_type == "url":
        return JSONResponse({"pdf_url": result.download_url})

    return JSONResponse(
        {
            "success": True,
            "pdf_url": result.download_url,
            "secure_link_url": result.link_url,
            "expires_at": _iso(result.link.expires_at),
            "filename": result.document.filename,
        }
    )


@app.get("/api/health")
async def health() -> JSONResponse:
    return JSONResponse({"status": "ok", "timestamp": _iso(datetime.now(timezone.utc))})


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    port = int(os.environ.get("PORT", str(PORT)))
    uvicorn.run("server:app", host="0.0.0.0", port=port, reload=False)
