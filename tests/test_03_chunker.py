"""Tests for provider-sized chunking."""
import pytest

from tts_relay.tts.chunker import needs_chunking, split_for_provider, utf8_len


class TestNeedsChunking:
    def test_short_text(self):
        assert not needs_chunking("Hello world")

    def test_limit_is_inclusive(self):
        assert not needs_chunking("a" * 5000)
        assert needs_chunking("a" * 5001)

    def test_counts_bytes_not_characters(self):
        # 2500 two-byte characters = 5000 bytes; one more pushes it over
        assert not needs_chunking("é" * 2500)
        assert needs_chunking("é" * 2501)


class TestSplitForProvider:
    def test_sentences_grouped_until_budget(self):
        result = split_for_provider("One. Two! Three?", max_bytes=8)
        assert result.chunks == ["One.", "Two.", "Three."]

    def test_everything_fits_in_one_chunk(self):
        result = split_for_provider("One. Two. Three.", max_bytes=100)
        assert result.chunks == ["One. Two. Three."]

    def test_chunks_respect_budget(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(400))
        result = split_for_provider(text, max_bytes=4500)
        assert len(result.chunks) > 1
        assert all(utf8_len(c) <= 4500 for c in result.chunks)

    def test_oversize_sentence_split_at_words(self):
        sentence = " ".join(["word"] * 50)
        result = split_for_provider(sentence, max_bytes=30)
        assert all(utf8_len(c) <= 30 for c in result.chunks)
        assert " ".join(result.chunks).split() == sentence.split()

    def test_oversize_word_cut_by_characters(self):
        result = split_for_provider("x" * 25, max_bytes=10)
        assert result.chunks == ["x" * 10, "x" * 10, "x" * 5]

    def test_multibyte_never_split_mid_character(self):
        result = split_for_provider("é" * 9, max_bytes=5)
        assert all(utf8_len(c) <= 5 for c in result.chunks)
        assert "".join(result.chunks) == "é" * 9

    def test_punctuation_only_yields_nothing(self):
        assert split_for_provider("...!?").chunks == []

    def test_timing_recorded(self):
        result = split_for_provider("Hello. World.")
        assert "chunk" in result.timings_s
        assert result.timings_s["chunk"] >= 0

    def test_invalid_budget(self):
        with pytest.raises(ValueError):
            split_for_provider("Hello.", max_bytes=0)
