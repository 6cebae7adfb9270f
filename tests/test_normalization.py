"""Tests for text normalization and the timeit helper."""
import time

import pytest

from tts_relay.utils.text import normalize_text
from tts_relay.utils.timeit import timeit


class TestNormalizeText:
    @pytest.mark.parametrize("raw,expected", [
        ("  Hello world  ", "Hello world"),
        ("Hello \n\t  world", "Hello world"),
        ("Hello , world !", "Hello, world!"),
        ("Wait ; what :", "Wait; what:"),
        ("( spaced ) [ out ] { here }", "(spaced) [out] {here}"),
        ('She said "hi"', 'She said "hi"'),
        ("MiXeD Case 123", "MiXeD Case 123"),
    ])
    def test_rules(self, raw, expected):
        assert normalize_text(raw)[0] == expected

    def test_variants_share_normal_form(self):
        a, _ = normalize_text("Hello ,  world")
        b, _ = normalize_text("Hello, world")
        assert a == b

    def test_whitespace_only_becomes_empty(self):
        assert normalize_text(" \n\t ")[0] == ""

    def test_timing_key(self):
        _, timings = normalize_text("Hello")
        assert isinstance(timings.get("normalize"), float)


class TestTimeit:
    def test_seconds_before_and_after(self):
        with timeit("block") as t:
            assert t.seconds == -1.0
            time.sleep(0.01)
        assert t.seconds >= 0.005
        assert t.timing.name == "block"

    def test_records_even_when_block_raises(self):
        t = timeit("failing")
        with pytest.raises(RuntimeError):
            with t:
                raise RuntimeError("boom")
        assert t.seconds >= 0
