"""Manifest sources: where raw manifest bytes come from.

A source only knows how to turn a versioned Coordinate into bytes. It
raises SourceNotFound when the manifest does not exist and SourceIOError for
anything transport related. Retrying, if any, happens inside a source.
"""
from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional, Union

from constants import Constants
from common.http_client import HttpFetchError, robust_get
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from manifest.models import Coordinate

logger = logging.getLogger(__name__)


class SourceNotFound(Exception):
    """The source has no manifest for the coordinate."""


class SourceIOError(Exception):
    """The source failed to deliver a manifest (I/O, transport, deadline)."""


class ManifestSource(ABC):
    """Interface for manifest repositories."""

    @abstractmethod
    def fetch(self, coordinate: Coordinate) -> bytes:
        """Return the raw manifest for a versioned coordinate."""

    def describe(self) -> str:
        return type(self).__name__


def _check_versioned(coordinate: Coordinate) -> None:
    if not coordinate.version:
        raise SourceNotFound(f"{coordinate} has no version; only versioned manifests can be fetched")


class LocalRepositorySource(ManifestSource):
    """Reads manifests from a Maven-layout directory tree.

    ``<root>/<group as path>/<artifact>/<version>/<artifact>-<version>.pom``;
    ``.yaml``, ``.yml`` and ``.json`` siblings are accepted too.
    """

    _SUFFIXES = (Constants.POM_SUFFIX,) + Constants.YAML_SUFFIXES

    def __init__(self, root: str):
        self.root = os.path.abspath(os.path.expanduser(root))

    def candidate_paths(self, coordinate: Coordinate) -> List[str]:
        base = os.path.join(
            self.root,
            *coordinate.group.split("."),
            coordinate.artifact,
            str(coordinate.version),
            f"{coordinate.artifact}-{coordinate.version}",
        )
        return [base + suffix for suffix in self._SUFFIXES]

    def fetch(self, coordinate: Coordinate) -> bytes:
        _check_versioned(coordinate)
        for path in self.candidate_paths(coordinate):
            if not os.path.isfile(path):
                continue
            try:
                with open(path, "rb") as fh:
                    return fh.read()
            except OSError as exc:
                raise SourceIOError(f"Cannot read {path}: {exc}") from exc
        raise SourceNotFound(f"{coordinate} not found under {self.root}")

    def describe(self) -> str:
        return f"local:{self.root}"


class HttpRepositorySource(ManifestSource):
    """Fetches POMs from a remote Maven-layout repository over HTTP."""

    def __init__(
        self,
        base_url: str = Constants.REPOSITORY_URL_MAVEN_CENTRAL,
        *,
        retries: int = Constants.HTTP_RETRY_MAX,
        timeout: float = Constants.REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.timeout = timeout

    def pom_url(self, coordinate: Coordinate) -> str:
        group_path = coordinate.group.replace(".", "/")
        return (
            f"{self.base_url}/{group_path}/{coordinate.artifact}/{coordinate.version}/"
            f"{coordinate.artifact}-{coordinate.version}.pom"
        )

    def fetch(self, coordinate: Coordinate) -> bytes:
        _check_versioned(coordinate)
        url = self.pom_url(coordinate)
        try:
            status, body = robust_get(url, context="repository", retries=self.retries, timeout=self.timeout)
        except HttpFetchError as exc:
            raise SourceIOError(str(exc)) from exc
        if status == 200:
            return body
        if status in (404, 410):
            raise SourceNotFound(f"{coordinate} not found at {safe_url(url)}")
        raise SourceIOError(f"Unexpected HTTP {status} for {safe_url(url)}")

    def describe(self) -> str:
        return f"http:{safe_url(self.base_url)}"


class ChainedSource(ManifestSource):
    """Tries several sources in order; the first one that has it wins."""

    def __init__(self, sources: Iterable[ManifestSource]):
        self.sources = list(sources)

    def fetch(self, coordinate: Coordinate) -> bytes:
        io_error: Optional[SourceIOError] = None
        for source in self.sources:
            try:
                return source.fetch(coordinate)
            except SourceNotFound:
                continue
            except SourceIOError as exc:
                logger.warning("Source %s failed for %s: %s", source.describe(), coordinate, exc)
                if io_error is None:
                    io_error = exc
        if io_error is not None:
            raise io_error
        tried = ", ".join(s.describe() for s in self.sources) or "no sources configured"
        raise SourceNotFound(f"{coordinate} not found in {tried}")

    def describe(self) -> str:
        return "chain(" + ", ".join(s.describe() for s in self.sources) + ")"


class DeadlineSource(ManifestSource):
    """Wraps a source with a caller-supplied absolute deadline.

    ``deadline`` is a ``time.monotonic()`` timestamp. A fetch still running
    when it passes is abandoned and reported as SourceIOError.
    """

    def __init__(self, inner: ManifestSource, deadline: float):
        self.inner = inner
        self.deadline = deadline
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=Constants.MAX_WORKERS, thread_name_prefix="deadline-fetch"
        )

    def fetch(self, coordinate: Coordinate) -> bytes:
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise SourceIOError(f"Deadline exceeded before fetching {coordinate}")
        future = self._executor.submit(self.inner.fetch, coordinate)
        try:
            return future.result(timeout=remaining)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise SourceIOError(f"Deadline exceeded while fetching {coordinate}") from exc

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def describe(self) -> str:
        return f"deadline({self.inner.describe()})"


class MemorySource(ManifestSource):
    """Dict-backed source. Keys are Coordinates or ``g:a:v`` strings.

    Keeps per-coordinate fetch counts, which is handy for checking that the
    loader never fetches the same manifest twice.
    """

    def __init__(self, manifests: Optional[Mapping[Union[Coordinate, str], Union[bytes, str]]] = None):
        self._manifests: Dict[Coordinate, bytes] = {}
        self._lock = threading.Lock()
        self.fetch_counts: Dict[Coordinate, int] = {}
        for key, value in (manifests or {}).items():
            self.add(key, value)

    def add(self, coordinate: Union[Coordinate, str], content: Union[bytes, str]) -> None:
        coord = Coordinate.parse(coordinate) if isinstance(coordinate, str) else coordinate
        data = content.encode("utf-8") if isinstance(content, str) else content
        with self._lock:
            self._manifests[coord] = data

    def fetch(self, coordinate: Coordinate) -> bytes:
        with self._lock:
            self.fetch_counts[coordinate] = self.fetch_counts.get(coordinate, 0) + 1
            data = self._manifests.get(coordinate)
        if is_debug_enabled(logger):
            logger.debug("Memory fetch", extra=extra_context(
                event="fetch", component="sources", action="memory_fetch",
                target=str(coordinate), outcome="hit" if data is not None else "miss"
            ))
        if data is None:
            raise SourceNotFound(f"{coordinate} not in memory source")
        return data

    def describe(self) -> str:
        return "memory"


def build_source(locations: Iterable[str], *, retries: int, timeout: float) -> ManifestSource:
    """Create a source for a list of repository locations.

    ``http://`` and ``https://`` locations become HttpRepositorySource, anything
    else is treated as a local directory.
    """
    sources: List[ManifestSource] = []
    for location in locations:
        if location.startswith(("http://", "https://")):
            sources.append(HttpRepositorySource(location, retries=retries, timeout=timeout))
        else:
            sources.append(LocalRepositorySource(location))
    if len(sources) == 1:
        return sources[0]
    return ChainedSource(sources)
