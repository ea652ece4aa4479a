"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters.
"""

from room_queue.application.interfaces.playback_engine import PlaybackEngine
from room_queue.application.interfaces.track_resolver import ResolvedTrack, TrackResolver

__all__ = [
    "PlaybackEngine",
    "TrackResolver",
    "ResolvedTrack",
]
