"""Backend utilities for the HTML to PDF service.

This package intentionally keeps FastAPI route handlers thin:
- rendering through headless Chromium
- rendered document storage + safe path handling
- share link registry (expiry + download cap)
- share-by-email delivery

Security note:
Link IDs are treated as capability tokens (unguessable UUID4). Anyone with the
link id can download the document until it expires or runs out of downloads,
so never log filesystem paths or expose them in responses.
"""
