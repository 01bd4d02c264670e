"""
Depth-bounded link traversal and its data structures.
"""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol, Set
from urllib.parse import urlparse


class Fetcher(Protocol):
    def fetch_links(self, url: str) -> List[str]: ...


@dataclass(frozen=True, slots=True)
class LinkRecord:
    """A discovered URL and the depth at which it was first seen."""
    url: str
    depth: int

    def render(self) -> str:
        """Output line body: one leading space per level of depth."""
        return " " * self.depth + self.url


@dataclass(slots=True)
class TraversalContext:
    """Mutable state of a single traversal run."""
    maxdepth: int
    fetcher: Fetcher
    visited: Set[str] = field(default_factory=set)
    depth: int = 0
    executor: Optional[ThreadPoolExecutor] = None
    pending: Dict[str, Future] = field(default_factory=dict)

    def mark(self, url: str) -> bool:
        """Add `url` to the visited set; False if it was already there."""
        if url in self.visited:
            return False
        self.visited.add(url)
        return True

    def prefetch(self, url: str) -> None:
        """Start fetching a URL that is certain to be expanded later."""
        if self.executor is not None and self.depth < self.maxdepth:
            self.pending[url] = self.executor.submit(self.fetcher.fetch_links, url)

    def links_for(self, url: str) -> List[str]:
        future = self.pending.pop(url, None)
        if future is not None:
            return future.result()
        return self.fetcher.fetch_links(url)


def validate_start_url(start_url: str) -> str:
    """Strip surrounding whitespace and require an absolute http(s) URL."""
    url = start_url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid start URL: {start_url!r}")
    return url


def traverse(
    start_url: str,
    maxdepth: int,
    fetcher: Fetcher,
    workers: int = 1,
) -> Iterator[LinkRecord]:
    """
    Lazily yield every link reachable from `start_url` within `maxdepth` hops.

    Each node's links are all discovered and marked visited before any of
    them is expanded, so a URL keeps the depth of its first discovery. There
    is no relaxation: a URL later found again on a shorter path is not
    re-emitted or re-expanded.

    Args:
        start_url: Absolute http(s) URL to start from.
        maxdepth: Maximum number of hops from the start URL (0 = start only).
        fetcher: Object whose `fetch_links(url)` returns a page's links.
        workers: Size of the prefetch pool; 1 fetches inline.

    Raises:
        ValueError: If the start URL or depth is invalid.
    """
    start = validate_start_url(start_url)
    if maxdepth < 0:
        raise ValueError(f"Depth must be non-negative, got {maxdepth}")
    if workers < 1:
        raise ValueError(f"Workers must be at least 1, got {workers}")
    return _run(start, maxdepth, fetcher, workers)


def _run(start: str, maxdepth: int, fetcher: Fetcher, workers: int) -> Iterator[LinkRecord]:
    ctx = TraversalContext(maxdepth=maxdepth, fetcher=fetcher, visited={start})
    if workers > 1:
        ctx.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rgetlinks")

    try:
        yield LinkRecord(start, 0)
        yield from _expand(ctx, start)
    finally:
        if ctx.executor is not None:
            ctx.executor.shutdown(wait=True, cancel_futures=True)


def _expand(ctx: TraversalContext, url: str) -> Iterator[LinkRecord]:
    if ctx.depth >= ctx.maxdepth:
        return

    ctx.depth += 1
    try:
        frontier: List[str] = []
        for link in ctx.links_for(url):
            if ctx.mark(link):
                frontier.append(link)
                ctx.prefetch(link)
                yield LinkRecord(link, ctx.depth)

        for link in frontier:
            yield from _expand(ctx, link)
    finally:
        ctx.depth -= 1
