from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import DOCUMENTS_ROOT, META_SUFFIX, PDF_SUFFIX
from .errors import NotFoundError
from .security import normalize_identifier, safe_join


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedDocument:
    document_id: str
    path: Path
    filename: str
    size: int
    created_at: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load_meta(meta_path: Path) -> dict:
    try:
        return json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}


def _write_meta(meta_path: Path, meta: dict) -> None:
    meta_path.write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf-8")


class DocumentStore:
    """Rendered PDFs on disk, one ``<id>.pdf`` plus a ``<id>.json`` sidecar each."""

    def __init__(self, root: Path = DOCUMENTS_ROOT) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _paths(self, document_id: str) -> tuple[str, Path, Path]:
        try:
            did = normalize_identifier(document_id)
            pdf_path = safe_join(self.root, f"{did}{PDF_SUFFIX}")
            meta_path = safe_join(self.root, f"{did}{META_SUFFIX}")
        except ValueError:
            raise NotFoundError("File not found")
        return did, pdf_path, meta_path

    def save(self, document_id: str, pdf_bytes: bytes, filename: Optional[str] = None) -> RenderedDocument:
        did, pdf_path, meta_path = self._paths(document_id)
        created_at = _now()
        # Write to a temp name first so a half-written file is never served.
        tmp_path = pdf_path.with_suffix(".part")
        tmp_path.write_bytes(pdf_bytes)
        tmp_path.replace(pdf_path)
        meta = {
            "filename": filename or f"{did}{PDF_SUFFIX}",
            "created_at": created_at.timestamp(),
            "size": len(pdf_bytes),
        }
        _write_meta(meta_path, meta)
        logger.info("PDF stored: %s%s (%d bytes)", did, PDF_SUFFIX, len(pdf_bytes))
        return RenderedDocument(
            document_id=did,
            path=pdf_path,
            filename=meta["filename"],
            size=len(pdf_bytes),
            created_at=created_at,
        )

    def exists(self, document_id: str) -> bool:
        try:
            _, pdf_path, _ = self._paths(document_id)
        except NotFoundError:
            return False
        return pdf_path.is_file()

    def get(self, document_id: str) -> RenderedDocument:
        did, pdf_path, meta_path = self._paths(document_id)
        if not pdf_path.is_file():
            raise NotFoundError("File not found")
        stat = pdf_path.stat()
        meta = _load_meta(meta_path)
        created = float(meta.get("created_at", stat.st_mtime))
        return RenderedDocument(
            document_id=did,
            path=pdf_path,
            filename=str(meta.get("filename") or f"{did}{PDF_SUFFIX}"),
            size=stat.st_size,
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
        )

    def list_documents(self) -> list[RenderedDocument]:
        """Return all stored documents, newest first."""
        documents: list[RenderedDocument] = []
        for child in self.root.iterdir():
            if child.suffix != PDF_SUFFIX or not child.is_file():
                continue
            try:
                documents.append(self.get(child.stem))
            except NotFoundError:
                # Not one of ours (name is not a UUID) or removed meanwhile.
                continue
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents
