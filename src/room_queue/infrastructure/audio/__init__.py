"""Audio infrastructure - yt-dlp resolver and ffplay engine."""

from room_queue.infrastructure.audio.ffplay_engine import FFplayConfig, FFplayEngine
from room_queue.infrastructure.audio.models import (
    AudioFormatInfo,
    CacheEntry,
    YtDlpOpts,
    YtDlpTrackInfo,
)
from room_queue.infrastructure.audio.ytdlp_resolver import YtDlpTrackResolver

__all__ = [
    "AudioFormatInfo",
    "CacheEntry",
    "FFplayConfig",
    "FFplayEngine",
    "YtDlpOpts",
    "YtDlpTrackInfo",
    "YtDlpTrackResolver",
]
