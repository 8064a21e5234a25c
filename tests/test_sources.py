"""Tests for manifest sources."""

import time
from unittest.mock import patch

import pytest

from common.http_client import HttpFetchError
from manifest.models import Coordinate
from manifest.sources import (
    ChainedSource,
    DeadlineSource,
    HttpRepositorySource,
    LocalRepositorySource,
    ManifestSource,
    MemorySource,
    SourceIOError,
    SourceNotFound,
    build_source,
)

LIB = Coordinate("org.example", "lib", "1.0")


class FailingSource(ManifestSource):
    """Source that always fails at the transport level."""

    def fetch(self, coordinate):
        raise SourceIOError("connection reset")


class SleepySource(ManifestSource):
    """Source that takes a while to answer."""

    def __init__(self, delay):
        self.delay = delay

    def fetch(self, coordinate):
        time.sleep(self.delay)
        return b"coordinate: g:a:1\n"


class TestLocalRepositorySource:
    """Tests for the Maven-layout directory source."""

    def test_reads_pom_from_maven_layout(self, tmp_path):
        target = tmp_path / "org" / "example" / "lib" / "1.0"
        target.mkdir(parents=True)
        (target / "lib-1.0.pom").write_bytes(b"<project/>")
        assert LocalRepositorySource(str(tmp_path)).fetch(LIB) == b"<project/>"

    def test_reads_yaml_sibling(self, tmp_path):
        target = tmp_path / "org" / "example" / "lib" / "1.0"
        target.mkdir(parents=True)
        (target / "lib-1.0.yaml").write_text("coordinate: org.example:lib:1.0\n", encoding="utf-8")
        assert b"org.example:lib" in LocalRepositorySource(str(tmp_path)).fetch(LIB)

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(SourceNotFound):
            LocalRepositorySource(str(tmp_path)).fetch(LIB)

    def test_unversioned_coordinate(self, tmp_path):
        with pytest.raises(SourceNotFound):
            LocalRepositorySource(str(tmp_path)).fetch(Coordinate("org.example", "lib"))


class TestHttpRepositorySource:
    """Tests for the remote repository source."""

    def test_pom_url(self):
        source = HttpRepositorySource("https://repo.example.com/maven2/")
        assert source.pom_url(LIB) == "https://repo.example.com/maven2/org/example/lib/1.0/lib-1.0.pom"

    @patch("manifest.sources.robust_get")
    def test_ok(self, mock_get):
        mock_get.return_value = (200, b"<project/>")
        assert HttpRepositorySource("https://repo.example.com").fetch(LIB) == b"<project/>"
        assert mock_get.call_args.kwargs["context"] == "repository"

    @patch("manifest.sources.robust_get")
    def test_404_is_not_found(self, mock_get):
        mock_get.return_value = (404, b"")
        with pytest.raises(SourceNotFound):
            HttpRepositorySource("https://repo.example.com").fetch(LIB)

    @patch("manifest.sources.robust_get")
    def test_unexpected_status_is_io_error(self, mock_get):
        mock_get.return_value = (403, b"")
        with pytest.raises(SourceIOError):
            HttpRepositorySource("https://repo.example.com").fetch(LIB)

    @patch("manifest.sources.robust_get")
    def test_transport_failure_is_io_error(self, mock_get):
        mock_get.side_effect = HttpFetchError("https://repo.example.com/x", "timeout after 3 attempts")
        with pytest.raises(SourceIOError):
            HttpRepositorySource("https://repo.example.com").fetch(LIB)


class TestChainedSource:
    """Tests for ordered fallback across sources."""

    def test_first_source_with_manifest_wins(self):
        first = MemorySource()
        second = MemorySource({"org.example:lib:1.0": "coordinate: org.example:lib:1.0\n"})
        third = MemorySource({"org.example:lib:1.0": "other"})
        assert b"org.example:lib" in ChainedSource([first, second, third]).fetch(LIB)
        assert LIB not in third.fetch_counts

    def test_io_error_reported_when_nobody_has_it(self):
        with pytest.raises(SourceIOError):
            ChainedSource([FailingSource(), MemorySource()]).fetch(LIB)

    def test_io_error_skipped_when_later_source_has_it(self):
        later = MemorySource({"org.example:lib:1.0": "x"})
        assert ChainedSource([FailingSource(), later]).fetch(LIB) == b"x"

    def test_not_found_everywhere(self):
        with pytest.raises(SourceNotFound):
            ChainedSource([MemorySource(), MemorySource()]).fetch(LIB)


class TestDeadlineSource:
    """Tests for caller-supplied deadlines."""

    def test_fetch_within_deadline(self):
        source = DeadlineSource(SleepySource(0), time.monotonic() + 5)
        try:
            assert source.fetch(LIB).startswith(b"coordinate")
        finally:
            source.close()

    def test_slow_fetch_is_abandoned(self):
        source = DeadlineSource(SleepySource(1.0), time.monotonic() + 0.05)
        try:
            started = time.monotonic()
            with pytest.raises(SourceIOError):
                source.fetch(LIB)
            assert time.monotonic() - started < 0.9
        finally:
            source.close()

    def test_expired_deadline_fails_immediately(self):
        inner = MemorySource({"org.example:lib:1.0": "x"})
        source = DeadlineSource(inner, time.monotonic() - 1)
        try:
            with pytest.raises(SourceIOError):
                source.fetch(LIB)
            assert LIB not in inner.fetch_counts
        finally:
            source.close()


def test_build_source_picks_implementation(tmp_path):
    single = build_source([str(tmp_path)], retries=1, timeout=1)
    assert isinstance(single, LocalRepositorySource)
    chained = build_source([str(tmp_path), "https://repo.example.com"], retries=1, timeout=1)
    assert isinstance(chained, ChainedSource)
    assert isinstance(chained.sources[1], HttpRepositorySource)
