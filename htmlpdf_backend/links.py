"""In-memory share link registry.

Links are capability tokens for one rendered document. A link is valid while
``now <= expires_at`` and ``download_count < max_downloads``; both checks run
at read time, there is no background sweep. Once a link turns invalid it
stays invalid.

The registry is process memory only and is lost on restart.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import DEFAULT_EXPIRATION_DAYS, MAX_DOWNLOADS
from .errors import LinkInvalidError, NotFoundError, ValidationError
from .security import new_identifier


logger = logging.getLogger(__name__)

REASON_EXPIRED = "Link expired"
REASON_EXHAUSTED = "Maximum downloads reached"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ShareLink:
    link_id: str
    target_id: str
    created_at: datetime
    expires_at: datetime
    download_count: int
    max_downloads: int

    def invalid_reason(self, now: datetime) -> Optional[str]:
        if now > self.expires_at:
            return REASON_EXPIRED
        if self.download_count >= self.max_downloads:
            return REASON_EXHAUSTED
        return None


@dataclass(frozen=True)
class LinkStatus:
    link: ShareLink
    valid: bool
    reason: Optional[str] = None

    @property
    def expired(self) -> bool:
        # Covers both expiry and an exhausted download cap.
        return not self.valid


class LinkRegistry:
    """Owns every ``ShareLink`` keyed by ``link_id``.

    All reads and mutations go through one lock so ``consume`` is a single
    validate-and-increment step even when handlers run on worker threads.
    """

    def __init__(
        self,
        max_downloads: int = MAX_DOWNLOADS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.max_downloads = max_downloads
        self._clock = clock
        self._links: dict[str, ShareLink] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._links)

    def __contains__(self, link_id: object) -> bool:
        with self._lock:
            return link_id in self._links

    def create(self, target_id: str, expiration_days: int = DEFAULT_EXPIRATION_DAYS) -> ShareLink:
        if isinstance(expiration_days, bool) or not isinstance(expiration_days, int) or expiration_days < 1:
            raise ValidationError("expirationDays must be a positive integer")

        created_at = self._clock()
        link = ShareLink(
            link_id=new_identifier(),
            target_id=target_id,
            created_at=created_at,
            expires_at=created_at + timedelta(days=expiration_days),
            download_count=0,
            max_downloads=self.max_downloads,
        )
        with self._lock:
            self._links[link.link_id] = link
        logger.info("Share link %s created for document %s (expires %s)", link.link_id, target_id, link.expires_at.isoformat())
        return link

    def get(self, link_id: str) -> ShareLink:
        with self._lock:
            link = self._links.get(link_id)
        if link is None:
            raise NotFoundError("Link not found")
        return link

    def describe(self, link_id: str) -> LinkStatus:
        link = self.get(link_id)
        reason = link.invalid_reason(self._clock())
        return LinkStatus(link=link, valid=reason is None, reason=reason)

    def consume(self, link_id: str) -> ShareLink:
        """Validate the link and count one download, atomically.

        Raises ``NotFoundError`` for unknown ids and ``LinkInvalidError`` for
        expired or exhausted links; a rejected call leaves the link untouched.
        """
        with self._lock:
            link = self._links.get(link_id)
            if link is None:
                raise NotFoundError("Link not found")
            reason = link.invalid_reason(self._clock())
            if reason is not None:
                logger.info("Share link %s rejected: %s", link_id, reason)
                raise LinkInvalidError(reason)
            link = replace(link, download_count=link.download_count + 1)
            self._links[link_id] = link
        logger.info("Share link %s consumed (%d/%d)", link_id, link.download_count, link.max_downloads)
        return link
