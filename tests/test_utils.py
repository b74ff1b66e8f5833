"""
Tests for text sanitizing and time helpers.
"""

import re
from datetime import datetime

import pytest

from chatroom.utils import clean_text, format_time, now_ms


class TestCleanText:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Ana", "Ana"),
            ("  Ana  ", "Ana"),
            ("<b>Ana</b>", "Ana"),
            ("<script>alert('x')</script>hi", "hi"),
            ("<style>p {color: red}</style>hi", "hi"),
            ("hi<!-- hidden -->", "hi"),
            ('<a href="http://x">link</a> text', "link text"),
            ("line\x00one\x07", "lineone"),
            ("a < b and c > d", "a < b and c > d"),
            ("<br/>", ""),
            ("   ", ""),
        ],
    )
    def test_clean(self, raw, expected):
        assert clean_text(raw) == expected

    def test_keeps_inner_newlines(self):
        assert clean_text(" one\ntwo ") == "one\ntwo"


def test_now_ms_is_milliseconds():
    assert abs(now_ms() - int(datetime.now().timestamp() * 1000)) < 5000


def test_format_time():
    assert format_time(datetime(2025, 1, 15, 9, 5, 3)) == "09:05:03"
    assert re.fullmatch(r"\d{2}:\d{2}:\d{2}", format_time())
