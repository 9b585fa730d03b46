"""版本列表缓存测试 - 10 分钟有效期 + 容错持久化"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from pkgrepo.store.cache import VersionCache


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFreshness:
    def test_second_lookup_within_ttl_hits_cache(self, tmp_path: Path, make_source) -> None:
        src = make_source()
        src.versions["foo"] = ["1.0.0"]
        clock = Clock()
        cache = VersionCache(tmp_path / "cache.json", clock=clock)

        first = cache.lookup(src, "foo")
        clock.now += 9 * 60
        second = cache.lookup(src, "foo")

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.versions == ["1.0.0"]
        assert src.list_calls == 1

    def test_stale_entry_refetched_and_overwritten(self, tmp_path: Path, make_source) -> None:
        src = make_source()
        src.versions["foo"] = ["1.0.0"]
        clock = Clock()
        cache = VersionCache(tmp_path / "cache.json", clock=clock)
        cache.lookup(src, "foo")

        src.versions["foo"].append("1.1.0")
        clock.now += 10 * 60
        result = cache.lookup(src, "foo")

        assert result.from_cache is False
        assert result.versions == ["1.0.0", "1.1.0"]
        assert src.list_calls == 2
        entry = cache.entries()[src.identity]["foo"]
        assert entry["time"] == int(clock.now * 1000)

    def test_entries_keyed_by_source(self, tmp_path: Path, make_source) -> None:
        a, b = make_source("a"), make_source("b")
        a.versions["foo"] = ["1.0.0"]
        b.versions["foo"] = ["2.0.0"]
        cache = VersionCache(tmp_path / "cache.json", clock=Clock())
        assert cache.lookup(a, "foo").versions == ["1.0.0"]
        assert cache.lookup(b, "foo").versions == ["2.0.0"]
        assert set(cache.entries()) == {"a", "b"}


class TestPersistence:
    def test_persisted_and_reloaded(self, tmp_path: Path, make_source) -> None:
        path = tmp_path / "cache.json"
        src = make_source()
        src.versions["foo"] = ["1.0.0"]
        clock = Clock()
        VersionCache(path, clock=clock).lookup(src, "foo")

        data = json.loads(path.read_text())
        assert data["external"][src.identity]["foo"]["versions"] == ["1.0.0"]

        reloaded = VersionCache(path, clock=clock)
        assert reloaded.lookup(src, "foo").from_cache is True
        assert src.list_calls == 1

    def test_corrupt_file_starts_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        assert VersionCache(path).entries() == {}

    def test_wrong_shape_starts_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text(json.dumps(["a", "b"]))
        assert VersionCache(path).entries() == {}

    def test_save_failure_is_not_fatal(self, tmp_path: Path, make_source) -> None:
        src = make_source()
        src.versions["foo"] = ["1.0.0"]
        cache = VersionCache(tmp_path / "cache.json", clock=Clock())
        with patch("pkgrepo.store.cache.save_json", side_effect=OSError("disk full")):
            result = cache.lookup(src, "foo")
        assert result.versions == ["1.0.0"]
        assert result.persisted is False
        # 内存缓存仍然有效
        assert cache.lookup(src, "foo").from_cache is True

    def test_source_error_leaves_cache_untouched(self, tmp_path: Path, make_source) -> None:
        from pkgrepo.core.exceptions import FetchError

        src = make_source()
        cache = VersionCache(tmp_path / "cache.json", clock=Clock())
        with patch.object(src, "list_versions", side_effect=FetchError("down", retryable=True)):
            with pytest.raises(FetchError) as exc_info:
                cache.lookup(src, "foo")
        assert exc_info.value.retryable
        assert cache.entries() == {}


class TestInvalidate:
    def test_invalidate_by_name(self, tmp_path: Path, make_source) -> None:
        src = make_source()
        src.versions = {"foo": ["1.0.0"], "bar": ["2.0.0"]}
        cache = VersionCache(tmp_path / "cache.json", clock=Clock())
        cache.lookup(src, "foo")
        cache.lookup(src, "bar")

        assert cache.invalidate(name="foo") == 1
        assert cache.lookup(src, "foo").from_cache is False
        assert cache.lookup(src, "bar").from_cache is True

    def test_invalidate_all(self, tmp_path: Path, make_source) -> None:
        src = make_source()
        src.versions = {"foo": ["1.0.0"]}
        cache = VersionCache(tmp_path / "cache.json", clock=Clock())
        cache.lookup(src, "foo")
        assert cache.invalidate() == 1
        assert cache.entries() == {}
