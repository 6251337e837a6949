from __future__ import annotations

import os
from pathlib import Path


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


# Root directory for rendered PDFs.
# Default: project-local ./documents for easier inspection.
# Override with env var HTMLPDF_DOCUMENTS_ROOT.
_root_raw = os.environ.get("HTMLPDF_DOCUMENTS_ROOT")
if _root_raw and _root_raw.strip():
    DOCUMENTS_ROOT = Path(_root_raw)
else:
    # htmlpdf_backend/ -> project root
    DOCUMENTS_ROOT = Path(__file__).resolve().parent.parent / "documents"
DOCUMENTS_ROOT = DOCUMENTS_ROOT.resolve()
DOCUMENTS_ROOT.mkdir(parents=True, exist_ok=True)

PORT = int(os.environ.get("PORT", "3000"))
BASE_URL = (os.environ.get("BASE_URL") or f"http://localhost:{PORT}").rstrip("/")

# Optional bearer token for the integration route. Unset means open access.
API_KEY = os.environ.get("API_KEY") or None

_origins_raw = os.environ.get("ALLOWED_ORIGINS")
if _origins_raw and _origins_raw.strip():
    ALLOWED_ORIGINS = [o.strip() for o in _origins_raw.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = ["http://localhost:5173"]
    if os.environ.get("FRONTEND_URL"):
        ALLOWED_ORIGINS.append(os.environ["FRONTEND_URL"])

# Share link policy.
DEFAULT_EXPIRATION_DAYS = 7
MAX_DOWNLOADS = 10

# Rendering. Timeout of 0 leaves Playwright's own default in place.
PAGE_FORMATS = ("A4", "Letter", "Legal", "Tabloid")
MARGINS = ("0.5cm", "1cm", "2cm", "3cm")
DEFAULT_PAGE_FORMAT = "A4"
DEFAULT_MARGIN = "1cm"
# Integration route prints edge to edge, like Chromium's own default.
NO_MARGIN = "0"
RENDER_TIMEOUT_MS = int(os.environ.get("HTMLPDF_RENDER_TIMEOUT_MS", "30000"))
CHROMIUM_EXECUTABLE = os.environ.get("HTMLPDF_CHROMIUM_EXECUTABLE") or None

# Upload limit for HTML files posted to /api/convert/upload.
MAX_UPLOAD_BYTES = int(os.environ.get("HTMLPDF_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB
ALLOWED_UPLOAD_EXTS = {".html", ".htm"}

# Per-client request limit on /api/*. RATE_LIMIT_MAX=0 disables it.
RATE_LIMIT_MAX = int(os.environ.get("RATE_LIMIT_MAX", "100"))
RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
# Only honour X-Forwarded-For when a reverse proxy sets it.
RATE_LIMIT_TRUST_PROXY = _env_flag("RATE_LIMIT_TRUST_PROXY", "false")

# SMTP. Delivery is skipped (and only logged) unless host, user and password are set.
SMTP_HOST = os.environ.get("SMTP_HOST", "")
SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
SMTP_USER = os.environ.get("SMTP_USER", "")
SMTP_PASS = os.environ.get("SMTP_PASS", "")
SMTP_FROM = os.environ.get("SMTP_FROM", "noreply@example.com")
SMTP_STARTTLS = _env_flag("SMTP_STARTTLS", "true")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

PDF_SUFFIX = ".pdf"
META_SUFFIX = ".json"
