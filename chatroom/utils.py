"""
Utility functions for the chat service: text sanitizing and clocks.
"""

import logging
import re
import time
from datetime import datetime

logger = logging.getLogger(__name__)


_SCRIPT_RE = re.compile(r"(?is)<script[^>]*>.*?</script>")
_STYLE_RE = re.compile(r"(?is)<style[^>]*>.*?</style>")
_COMMENT_RE = re.compile(r"(?s)<!--.*?-->")
_TAG_RE = re.compile(r"(?s)</?[a-zA-Z!/][^>]*>")
# C0/C1 control characters except tab and newline
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")


def clean_text(value: str) -> str:
    """
    Normalize an untrusted text field.

    Removes script/style blocks, HTML comments, markup tags and control
    characters, then trims surrounding whitespace.

    Args:
        value: Raw text from the client

    Returns:
        Sanitized text (possibly empty)
    """
    text = _SCRIPT_RE.sub("", value)
    text = _STYLE_RE.sub("", text)
    text = _COMMENT_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = _CONTROL_RE.sub("", text)
    cleaned = text.strip()

    if cleaned != value:
        logger.debug(f"Sanitized text: {len(value)} -> {len(cleaned)} chars")

    return cleaned


def now_ms() -> int:
    """Current wall-clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


def format_time(moment: datetime | None = None) -> str:
    """Human-readable message time, HH:MM:SS in server local time."""
    return (moment or datetime.now()).strftime("%H:%M:%S")
