# tests/test_redis_cache_store.py

"""Tests for the Redis cache store and its JSON value codec."""

import json
import unittest
from unittest.mock import MagicMock

import redis

from search_gateway.models.errors import CacheUnavailable
from search_gateway.models.result import (
    FacetCount,
    FacetSet,
    PriceRange,
    ResultSource,
    SearchResult,
)
from search_gateway.storage.cache_codec import decode_value, encode_value
from search_gateway.storage.redis_cache_store import RedisCacheStore


def _result() -> SearchResult:
    """A small cached result."""
    return SearchResult(
        items=(5, 3, 9),
        total=42,
        page=2,
        page_size=3,
        total_pages=14,
        has_more=True,
        source=ResultSource.PRIMARY,
        took_ms=12.5,
    )


class TestCacheCodec(unittest.TestCase):
    """encode_value / decode_value."""

    def test_search_result(self) -> None:
        """Ranking order and paging survive encoding."""
        decoded = decode_value(encode_value(_result()))
        self.assertEqual(decoded, _result())

    def test_facets(self) -> None:
        """Facet sets are restored with their price range."""
        facets = FacetSet(
            categories=(FacetCount("phones", 3),),
            price_range=PriceRange(10.0, 20.0),
            conditions=(FacetCount("new", 3),),
        )
        self.assertEqual(decode_value(encode_value(facets)), facets)

    def test_strings_decode_as_tuple(self) -> None:
        """Suggestion lists come back as tuples."""
        self.assertEqual(
            decode_value(encode_value(["a", "b"])), ("a", "b"),
        )

    def test_unsupported_type(self) -> None:
        """Arbitrary objects are refused."""
        with self.assertRaises(TypeError):
            encode_value({"x": 1})

    def test_unknown_kind(self) -> None:
        """Foreign payloads raise ValueError."""
        with self.assertRaises(ValueError):
            decode_value(json.dumps({"kind": "mystery"}))


class TestRedisCacheStore(unittest.TestCase):
    """RedisCacheStore against a mocked client."""

    def setUp(self) -> None:
        self.client = MagicMock()
        self.store = RedisCacheStore(client=self.client, namespace="t")

    def test_set_uses_namespace_and_px(self) -> None:
        """Keys are namespaced and TTL is in milliseconds."""
        self.store.set("search:abc", ["x"], 300)
        args, kwargs = self.client.set.call_args
        self.assertEqual(args[0], "t:search:abc")
        self.assertEqual(json.loads(args[1])["kind"], "strings")
        self.assertEqual(kwargs["px"], 300_000)

    def test_get_decodes(self) -> None:
        """Stored JSON is decoded back into a SearchResult."""
        self.client.get.return_value = encode_value(_result())
        self.assertEqual(self.store.get("search:abc"), _result())
        self.client.get.assert_called_once_with("t:search:abc")

    def test_get_missing(self) -> None:
        """A nil reply is a miss."""
        self.client.get.return_value = None
        self.assertIsNone(self.store.get("k"))

    def test_corrupt_entry_dropped(self) -> None:
        """Undecodable values are deleted and reported as a miss."""
        self.client.get.return_value = "{not json"
        self.assertIsNone(self.store.get("k"))
        self.client.delete.assert_called_once_with("t:k")

    def test_redis_error_becomes_cache_unavailable(self) -> None:
        """Connection failures surface as CacheUnavailable."""
        self.client.get.side_effect = redis.ConnectionError("refused")
        with self.assertRaises(CacheUnavailable):
            self.store.get("k")

    def test_keys_strip_namespace(self) -> None:
        """keys() scans inside the namespace and strips the prefix."""
        self.client.scan_iter.return_value = iter(
            ["t:search:1", "t:search:2"]
        )
        self.assertEqual(
            self.store.keys("search:*"), ["search:1", "search:2"],
        )
        self.client.scan_iter.assert_called_once_with(match="t:search:*")

    def test_clear_deletes_namespace(self) -> None:
        """clear() removes every key it can see."""
        self.client.scan_iter.return_value = iter(["t:a", "t:b"])
        self.client.delete.return_value = 2
        self.assertEqual(self.store.clear(), 2)
        self.client.delete.assert_called_once_with("t:a", "t:b")

    def test_ping(self) -> None:
        """ping() is False when Redis is unreachable."""
        self.client.ping.side_effect = redis.ConnectionError("refused")
        self.assertFalse(self.store.ping())


if __name__ == "__main__":
    unittest.main()
