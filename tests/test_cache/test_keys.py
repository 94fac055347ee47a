"""Tests for checksum generation and cache key derivation."""

import hashlib

import pytest

from fakes import FakeFetcher, record
from screenscope.cache.keys import (
    build_cache_key,
    canonical_order,
    combine_checksums,
    generate_checksums,
    hash_bytes,
)
from screenscope.errors.exceptions import FetchError
from screenscope.types import ItemRef


def _items(*urls: str) -> list[ItemRef]:
    return [ItemRef(id=url, url=url, order=i) for i, url in enumerate(urls)]


class TestHashBytes:
    def test_deterministic(self):
        assert hash_bytes(b"abc") == hash_bytes(b"abc")

    def test_sha256_hex(self):
        assert hash_bytes(b"abc") == hashlib.sha256(b"abc").hexdigest()
        assert len(hash_bytes(b"abc")) == 64

    def test_different_content(self):
        assert hash_bytes(b"abc") != hash_bytes(b"abd")


class TestCombineChecksums:
    def test_deterministic(self):
        assert combine_checksums(["a", "b"]) == combine_checksums(["a", "b"])

    def test_order_sensitive(self):
        assert combine_checksums(["a", "b"]) != combine_checksums(["b", "a"])

    def test_joined_with_colon(self):
        expected = hashlib.sha256(b"a:b").hexdigest()
        assert combine_checksums(["a", "b"]) == expected


class TestBuildCacheKey:
    def test_fields(self):
        key = build_cache_key("app-1", [record("i1", "c1"), record("i2", "c2")])
        assert key.entity_id == "app-1"
        assert key.item_count == 2
        assert key.combined_checksum == combine_checksums(["c1", "c2"])

    def test_as_string(self):
        key = build_cache_key("app-1", [record("i1", "c1")])
        assert key.as_string() == f"app-1:{combine_checksums(['c1'])}:1"

    def test_reordering_changes_key(self):
        a = build_cache_key("app-1", [record("i1", "c1"), record("i2", "c2")])
        b = build_cache_key("app-1", [record("i2", "c2"), record("i1", "c1")])
        assert a != b

    def test_same_inputs_same_key(self):
        records = [record("i1", "c1"), record("i2", "c2")]
        assert build_cache_key("app-1", records) == build_cache_key("app-1", list(records))


class TestCanonicalOrder:
    def test_sorts_by_order(self):
        items = [ItemRef(id="b", url="b", order=2), ItemRef(id="a", url="a", order=1)]
        assert [i.id for i in canonical_order(items)] == ["a", "b"]

    def test_ties_keep_input_position(self):
        items = [ItemRef(id="x", url="x"), ItemRef(id="y", url="y")]
        assert [i.id for i in canonical_order(items)] == ["x", "y"]


class TestGenerateChecksums:
    async def test_hashes_every_item(self, fetcher):
        fetched = await generate_checksums(_items("img1", "img2"), fetcher)
        assert [f.record.item_id for f in fetched] == ["img1", "img2"]
        assert fetched[0].record.checksum == hash_bytes(b"image-one")
        assert fetched[1].data == b"image-two"

    async def test_canonical_order_applied(self, fetcher):
        items = [ItemRef(id="img2", url="img2", order=5), ItemRef(id="img1", url="img1", order=1)]
        fetched = await generate_checksums(items, fetcher)
        assert [f.ref.id for f in fetched] == ["img1", "img2"]

    async def test_progress_reported(self, fetcher):
        progress: list[int] = []
        await generate_checksums(_items("img1", "img2", "img3"), fetcher, progress.append)
        assert progress == [33, 67, 100]

    async def test_unreadable_item_raises_fetch_error(self, fetcher):
        with pytest.raises(FetchError) as exc_info:
            await generate_checksums(_items("img1", "missing"), fetcher)
        assert exc_info.value.item_id == "missing"
        assert exc_info.value.url == "missing"

    async def test_fetch_error_gets_item_id(self):
        class _Failing:
            async def fetch_bytes(self, reference):
                raise FetchError("boom", url=reference)

        with pytest.raises(FetchError) as exc_info:
            await generate_checksums([ItemRef(id="s1", url="u1")], _Failing())
        assert exc_info.value.item_id == "s1"

    async def test_png_mime_detected(self, sample_image_bytes):
        fetcher = FakeFetcher({"shot": sample_image_bytes})
        fetched = await generate_checksums([ItemRef(id="shot", url="shot")], fetcher)
        assert fetched[0].mime_type == "image/png"
