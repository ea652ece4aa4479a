"""TrackResolver implementation using yt-dlp."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, cast

from yt_dlp import YoutubeDL

from room_queue.application.interfaces.track_resolver import ResolvedTrack, TrackResolver
from room_queue.domain.shared.messages import LogTemplates

from .models import (
    CACHE_MAX_SIZE,
    CACHE_TTL,
    LOG_URL_TRUNCATE,
    CacheEntry,
    YtDlpOpts,
    YtDlpTrackInfo,
)

logger = logging.getLogger(__name__)


class YtDlpTrackResolver(TrackResolver):
    """Extracts title and stream URL off the event loop, with a TTL cache.

    Only successful extractions are cached. A failure may be a passing
    network error, so the next call for the same URL tries again.
    """

    def __init__(self, ytdlp_format: str = "bestaudio/best") -> None:
        self._opts = YtDlpOpts(format=ytdlp_format or None)
        self._cache: dict[str, CacheEntry] = {}

    async def resolve(self, url: str) -> ResolvedTrack | None:
        info = await asyncio.to_thread(self._extract_info_sync, url)
        if info is None:
            return None

        stream_url = info.stream_url
        if stream_url is None:
            logger.warning(LogTemplates.RESOLVER_NO_STREAM_URL, url[:LOG_URL_TRUNCATE])
        return ResolvedTrack(
            title=info.title or url,
            url=url,
            stream_url=stream_url,
        )

    def _extract_info_sync(self, url: str) -> YtDlpTrackInfo | None:
        now = time.time()
        cached = self._cache.get(url)
        if cached is not None:
            if now - cached.cached_at < CACHE_TTL:
                logger.debug(LogTemplates.RESOLVER_CACHE_HIT, url[:LOG_URL_TRUNCATE])
                return cached.info
            self._cache.pop(url, None)

        try:
            with YoutubeDL(params=cast(Any, self._opts.model_dump(exclude_none=True))) as ydl:
                data = ydl.extract_info(url, download=False)
        except Exception:
            logger.exception(LogTemplates.RESOLVER_EXTRACT_FAILED, url[:LOG_URL_TRUNCATE])
            data = None

        if not isinstance(data, dict):
            return None

        result = YtDlpTrackInfo.model_validate(dict(data))
        self._cache[url] = CacheEntry(info=result, cached_at=now)
        self._prune(now)
        return result

    def _prune(self, now: float) -> None:
        if len(self._cache) <= CACHE_MAX_SIZE:
            return
        expired = [k for k, entry in self._cache.items() if now - entry.cached_at >= CACHE_TTL]
        for k in expired:
            self._cache.pop(k, None)
        if expired:
            logger.debug(LogTemplates.RESOLVER_CACHE_EXPIRED_CLEANED, len(expired))
