"""Collaborators of the notification pipeline.

This package contains the tracker and messenger interfaces and their
concrete implementations:
    - YouTrackClient: changed issues and change history from YouTrack
    - TelegramMessenger: message delivery through the Telegram Bot API
"""

from tracknotify.adapters.base import Messenger, TrackerClient
from tracknotify.adapters.telegram import TelegramMessenger
from tracknotify.adapters.youtrack import YouTrackClient

__all__ = [
    "Messenger",
    "TelegramMessenger",
    "TrackerClient",
    "YouTrackClient",
]
