
from .client import MeritRoomDiscordBot
from .transport import DiscordTransport

__all__ = [
    "DiscordTransport",
    "MeritRoomDiscordBot",
]
