"""Wire format of chat messages exchanged between clients and the server."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5566
RECV_SIZE = 255
ENCODING = "utf-8"

EXIT_WORDS = ("Bye", "Quit", "886", "Exit")
SYSTEM_PREFIX = "系统消息："

_USER_OPEN = "<username>"
_USER_CLOSE = "</username>"


@dataclass(frozen=True)
class ChatMessage:
    """A message sent by a client, as the server understands it."""

    time: str
    username: str
    text: str

    def to_broadcast(self) -> str:
        """Render the message the way it is relayed to other clients."""
        return f"[{self.time}]<{self.username}>:{self.text}"


def format_timestamp(when: datetime) -> str:
    """Return the bracketed ``[HH:MM:SS]`` stamp attached to messages."""
    return when.strftime("[%H:%M:%S]")


def encode_client_message(text: str, username: str, when: datetime) -> bytes:
    """Build the bytes a client sends: ``text[time]<username>name</username>``."""
    payload = f"{text}{format_timestamp(when)}{_USER_OPEN}{username}{_USER_CLOSE}"
    return payload.encode(ENCODING)


def _decode(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        return raw.decode(ENCODING, errors="replace")
    return raw


def _mid(text: str, first: int, count: int) -> str:
    """Substring with the clamping rules of a bounded ``mid`` operation."""
    first = max(first, 0)
    count = max(count, 0)
    return text[first:first + count]


def parse_client_message(raw: bytes | str) -> ChatMessage:
    """Split a client payload into its time, user name and text.

    The text is everything before the first ``[``; the time lies between that
    ``[`` and the next ``]``; the user name lies inside the username tags.
    Missing markers yield empty or partial fields rather than errors.
    """
    data = _decode(raw)

    time_start = data.find("[") + 1
    time_end = data.find("]", time_start)
    time = _mid(data, time_start, time_end - time_start)

    user_start = data.find(_USER_OPEN) + len(_USER_OPEN)
    user_end = data.find(_USER_CLOSE, user_start)
    username = _mid(data, user_start, user_end - user_start)

    text = _mid(data, 0, data.find("["))
    return ChatMessage(time=time, username=username, text=text)


def is_exit_word(text: str) -> bool:
    """Tell whether ``text`` is one of the words that end a client session."""
    lowered = text.lower()
    return any(lowered == word.lower() for word in EXIT_WORDS)


def system_message(text: str) -> str:
    """Prefix an operator announcement with the system marker."""
    if not text:
        raise ValueError("system message must not be empty")
    return SYSTEM_PREFIX + text