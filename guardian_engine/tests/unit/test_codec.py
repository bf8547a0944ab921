"""Tests for snapshot payload encoding, tolerant decoding and hashing."""

from __future__ import annotations

import bz2
import gzip
import hashlib
import json
import logging
import pickle
import zlib

import pytest
from guardian_engine.exceptions import SerializationError
from guardian_engine.models import CompressionMethod
from guardian_engine.snapshot import codec

_DOCUMENTS = {
    "version": 2,
    "active": {
        "system.site": {"name": "Drupal Ünïcode", "page": {"front": "/node"}},
        "core.extension": {"module": {"node": 0, "views": 0}},
    },
    "sync": {"system.site": {"name": "Drupal"}},
}


class TestRoundTrip:
    @pytest.mark.parametrize("method", list(CompressionMethod))
    def test_every_method(self, method: CompressionMethod) -> None:
        blob = codec.compress_payload(_DOCUMENTS, method)
        assert codec.decompress_payload(blob) == _DOCUMENTS

    def test_gzip_output_is_deterministic(self) -> None:
        first = codec.compress_payload(_DOCUMENTS, CompressionMethod.GZIP)
        second = codec.compress_payload(dict(reversed(list(_DOCUMENTS.items()))), CompressionMethod.GZIP)
        assert first == second

    def test_none_is_canonical_json(self) -> None:
        blob = codec.compress_payload({"b": 1, "a": [1, 2]}, "none")
        assert blob == b'{"a":[1,2],"b":1}'

    def test_unencodable_data_raises(self) -> None:
        with pytest.raises(SerializationError):
            codec.compress_payload({"bad": object()})

    def test_nan_is_rejected(self) -> None:
        with pytest.raises(SerializationError):
            codec.serialize_payload({"x": float("nan")})


class TestTolerantDecode:
    def test_zlib_blob(self) -> None:
        blob = zlib.compress(json.dumps({"a": {"v": 1}}).encode())
        assert codec.decompress_payload(blob) == {"a": {"v": 1}}

    def test_bzip2_blob(self) -> None:
        blob = bz2.compress(json.dumps({"a": {"v": 1}}).encode())
        assert codec.decompress_payload(blob) == {"a": {"v": 1}}

    def test_legacy_pickle_of_plain_containers(self) -> None:
        blob = gzip.compress(pickle.dumps({"a": {"v": [1, 2]}}))
        assert codec.decompress_payload(blob) == {"a": {"v": [1, 2]}}

    def test_pickle_with_globals_is_refused(self, caplog) -> None:
        blob = gzip.compress(pickle.dumps({"a": CompressionMethod.GZIP}))
        with caplog.at_level(logging.ERROR):
            assert codec.decompress_payload(blob) == {}
        assert "Failed to decompress snapshot data" in caplog.text

    def test_corrupt_blob_yields_empty_mapping(self, caplog) -> None:
        with caplog.at_level(logging.ERROR):
            assert codec.decompress_payload(b"\x00\x01not-a-payload") == {}
        assert "Failed to decompress snapshot data" in caplog.text

    def test_empty_blob(self) -> None:
        assert codec.decompress_payload(b"") == {}
        assert codec.decompress_payload(None) == {}

    def test_non_mapping_json_is_rejected(self) -> None:
        assert codec.decompress_payload(b"[1, 2, 3]") == {}


class TestPayloadVersions:
    def test_v2(self) -> None:
        payload = codec.decode_payload(codec.compress_payload(_DOCUMENTS))
        assert payload.is_v2
        assert set(payload.active) == {"system.site", "core.extension"}
        assert payload.sync == {"system.site": {"name": "Drupal"}}
        assert payload.names() == {"system.site", "core.extension"}

    def test_v1_flat_map(self) -> None:
        legacy = {"system.site": {"name": "Old"}, "node.type.page": {"name": "Page"}}
        payload = codec.decode_payload(codec.compress_payload(legacy))
        assert not payload.is_v2
        assert payload.active == legacy
        assert payload.sync == {}
        assert payload.to_dict() == legacy

    def test_corrupt_blob_is_empty_v1(self) -> None:
        payload = codec.decode_payload(b"garbage")
        assert payload.active == {}
        assert payload.sync == {}


class TestHashing:
    def test_canonical_hash_ignores_key_order(self) -> None:
        assert codec.compute_hash({"a": 1, "b": 2}) == codec.compute_hash({"b": 2, "a": 1})

    def test_canonical_hash_is_sha256(self) -> None:
        assert codec.compute_hash({"a": 1}) == hashlib.sha256(b'{"a":1}').hexdigest()

    def test_legacy_hash_accepted(self) -> None:
        data = {"b": {"y": 1, "x": 2}, "a": "é"}
        legacy = hashlib.sha256(json.dumps(data, ensure_ascii=False).encode("utf-8")).hexdigest()
        assert legacy != codec.compute_hash(data)
        assert codec.legacy_hash(data) == legacy
        assert codec.hash_matches(data, legacy)

    def test_mismatch(self) -> None:
        assert not codec.hash_matches({"a": 1}, codec.compute_hash({"a": 2}))
