"""
Message visibility rules.

A participant sees every public message, everything addressed to or sent
by them, and everything addressed to the broadcast target. Private
exchanges between two other participants are hidden.
"""

import sys
from typing import Optional, Sequence, TypeVar

from chatroom.config import settings
from chatroom.models import MessageKind

T = TypeVar("T")

_MAX_LIMIT_DIGITS = 18


def is_visible(message, participant: Optional[str], broadcast: Optional[str] = None) -> bool:
    """Return True if ``participant`` may read ``message``."""
    if broadcast is None:
        broadcast = settings.BROADCAST_TARGET

    if message.kind == MessageKind.MESSAGE:
        return True
    if message.to_name == broadcast:
        return True
    if participant is None:
        return False
    return message.to_name == participant or message.from_name == participant


def parse_limit(raw) -> Optional[int]:
    """
    Interpret a client-supplied limit.

    Returns the limit as an int only when it is a positive integer;
    anything else (absent, non-numeric, zero, negative) means no limit.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not (text.isascii() and text.isdigit()):
            return None
        digits = text.lstrip("0")
        # Longer than any log could be; int() also caps digit-string length
        if len(digits) > _MAX_LIMIT_DIGITS:
            return sys.maxsize
        value = int(digits) if digits else 0
    return value if value > 0 else None


def apply_limit(items: Sequence[T], limit) -> list[T]:
    """Keep the last ``limit`` items in their original order."""
    limit = parse_limit(limit)
    if limit is None:
        return list(items)
    return list(items[-limit:])


def visible_messages(
    messages: Sequence[T],
    participant: Optional[str],
    limit=None,
    broadcast: Optional[str] = None,
) -> list[T]:
    """
    Filter the log for one reader, then paginate.

    Args:
        messages: Full log in creation order
        participant: Reader's name (None when the reader is anonymous)
        limit: Optional page size, applied to the filtered sequence
        broadcast: Broadcast target (defaults to the configured one)

    Returns:
        Visible messages, most recent last
    """
    visible = [m for m in messages if is_visible(m, participant, broadcast)]
    return apply_limit(visible, limit)
