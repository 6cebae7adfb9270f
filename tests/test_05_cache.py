"""
Tests for the fingerprint cache.

Tests cover:
- Fingerprint sensitivity to every semantic field
- Filename grammar (make_filename / parse_filename)
- store() / lookup() round trip and the in-memory index
- Index rebuild from an existing directory
- Stale index entries after external deletion
"""
import os

import pytest

from tts_relay.tts.engine import AudioConfig
from tts_relay.tts.storage import (
    CONVERSATION_TAG,
    CacheStore,
    hash_dict,
    make_conversation_fingerprint,
    make_filename,
    make_fingerprint,
    parse_filename,
)


@pytest.fixture
def store(tmp_path):
    return CacheStore(str(tmp_path / "cache"), base_url="http://localhost:5000")


def _fp(text="Hello world", voice="en-US-Standard-C", lang="en-US", **audio):
    return make_fingerprint(text, voice, lang, AudioConfig(**audio))


class TestFingerprint:
    def test_deterministic(self):
        assert _fp() == _fp()
        assert len(_fp()) == 64

    @pytest.mark.parametrize("changed", [
        {"text": "Hello world!"},
        {"voice": "en-US-Neural2-F"},
        {"lang": "en"},
        {"speaking_rate": 1.25},
        {"pitch": -2.0},
        {"volume_gain_db": 3.0},
    ])
    def test_every_field_matters(self, changed):
        assert _fp(**changed) != _fp()

    def test_int_and_float_params_hash_alike(self):
        assert _fp(speaking_rate=1) == _fp(speaking_rate=1.0)

    def test_mapping_audio_config(self):
        as_dict = make_fingerprint("Hello world", "en-US-Standard-C", "en-US",
                                   {"speaking_rate": 1.0, "pitch": 0.0, "volume_gain_db": 0.0})
        assert as_dict == _fp()

    def test_hash_dict_ignores_key_order(self):
        assert hash_dict({"a": 1, "b": 2}) == hash_dict({"b": 2, "a": 1})

    def test_conversation_order_and_pause_matter(self):
        a = make_conversation_fingerprint([("Hi", "v1"), ("Yo", "v2")], 0.5)
        assert a == make_conversation_fingerprint([("Hi", "v1"), ("Yo", "v2")], 0.5)
        assert a != make_conversation_fingerprint([("Yo", "v2"), ("Hi", "v1")], 0.5)
        assert a != make_conversation_fingerprint([("Hi", "v1"), ("Yo", "v2")], 1.0)


class TestFilenames:
    def test_single_segment_grammar(self):
        name = make_filename("3f2a9c01d4e5ffff", "neural-male", "mp3", timestamp_ms=1741000000000)
        assert name == "tts-neural-male-3f2a9c01d4e5-1741000000000.mp3"
        assert parse_filename(name) == ("3f2a9c01d4e5", "neural-male", 1741000000000)

    def test_conversation_grammar(self):
        name = make_filename("0c9d1e2f3a4b0000", CONVERSATION_TAG, "wav", timestamp_ms=5)
        assert name == "conversation-0c9d1e2f3a4b-5.wav"
        assert parse_filename(name) == ("0c9d1e2f3a4b", CONVERSATION_TAG, 5)

    @pytest.mark.parametrize("name", [
        ".tts-female-3f2a9c01d4e5-1.mp3.tmp",
        "notes.txt",
        "tts-female-XYZ-1.mp3",
        "tts-female-3f2a9c01d4e5.mp3",
    ])
    def test_foreign_files_rejected(self, name):
        assert parse_filename(name) is None


class TestStoreLookup:
    def test_miss_then_hit(self, store):
        fp = _fp()
        assert store.lookup(fp, "female") is None

        saved = store.store(fp, b"ID3audio", "female", ext="mp3")
        assert saved.path.read_bytes() == b"ID3audio"
        assert saved.url == f"http://localhost:5000/tts-cache/{saved.filename}"

        hit = store.lookup(fp, "female")
        assert hit is not None
        assert hit.filename == saved.filename
        assert hit.size_bytes == len(b"ID3audio")

    def test_tag_is_part_of_the_key(self, store):
        fp = _fp()
        store.store(fp, b"a", "female")
        assert store.lookup(fp, "male") is None

    def test_no_temp_files_left(self, store):
        store.store(_fp(), b"data", "female")
        assert not [p for p in store.base_dir.iterdir() if p.name.endswith(".tmp")]

    def test_newest_file_wins(self, store):
        fp = _fp()
        store.store(fp, b"old", "female", timestamp_ms=1000)
        newer = store.store(fp, b"new", "female", timestamp_ms=2000)
        store.rebuild_index()
        assert store.lookup(fp, "female").filename == newer.filename

    def test_rebuild_from_existing_directory(self, tmp_path):
        base = tmp_path / "cache"
        first = CacheStore(str(base))
        fp = _fp()
        saved = first.store(fp, b"x", "female")

        second = CacheStore(str(base))
        hit = second.lookup(fp, "female")
        assert hit is not None and hit.filename == saved.filename

    def test_deleted_file_is_a_miss(self, store):
        fp = _fp()
        saved = store.store(fp, b"x", "female")
        os.remove(saved.path)
        assert store.lookup(fp, "female") is None
        assert store.get_stats()["indexed_entries"] == 0

    def test_write_failure_propagates(self, store):
        store.base_dir.chmod(0o500)
        try:
            if os.access(store.base_dir, os.W_OK):
                pytest.skip("running with privileges that ignore directory permissions")
            with pytest.raises(OSError):
                store.store(_fp(), b"x", "female")
        finally:
            store.base_dir.chmod(0o700)
