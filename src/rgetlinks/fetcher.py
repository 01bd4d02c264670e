"""
Page fetching and link extraction.
"""
from __future__ import annotations

import codecs
import re
import sys
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional
from urllib.parse import urljoin

import requests
from lxml.etree import HTMLPullParser, LxmlError

DEFAULT_TIMEOUT = 15.0
DEFAULT_DEADLINE = 60.0
DEFAULT_MAX_BYTES = 16 * 1024 * 1024
CHUNK_SIZE = 64 * 1024

# Content types worth downloading for links; everything else is only probed
TEXTUAL_TYPE = re.compile(r"text|html", re.IGNORECASE)
CHARSET = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)

# Only these tags matter for link discovery
LINK_TAGS = ("a", "base")


@dataclass(slots=True)
class CrawlStats:
    """Statistics collected while fetching, for summary output."""
    pages_probed: int = 0
    pages_fetched: int = 0
    pages_skipped: int = 0
    links_extracted: int = 0
    error_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def record_error(self, status_code: Optional[int]) -> None:
        """Record an error by status code category."""
        with self._lock:
            if status_code is None:
                self.error_counts["connection_error"] += 1
            else:
                self.error_counts[str(status_code)] += 1

    def record_parse_error(self) -> None:
        """Record a page whose markup the parser gave up on."""
        with self._lock:
            self.error_counts["parse_error"] += 1

    def record_probe(self, textual: bool) -> None:
        """Record a HEAD probe and whether the page will be downloaded."""
        with self._lock:
            self.pages_probed += 1
            if not textual:
                self.pages_skipped += 1

    def record_page(self, links: int) -> None:
        """Record a downloaded page and the number of links found on it."""
        with self._lock:
            self.pages_fetched += 1
            self.links_extracted += links


def is_textual(content_type: Optional[str]) -> bool:
    """True when a Content-Type header announces a text or HTML resource."""
    return bool(content_type) and TEXTUAL_TYPE.search(content_type) is not None


def declared_charset(content_type: Optional[str]) -> Optional[str]:
    """Charset named in a Content-Type header, if it is a known encoding."""
    match = CHARSET.search(content_type or "")
    if match is None:
        return None
    try:
        codecs.lookup(match.group(1))
    except LookupError:
        return None
    return match.group(1)


def resolve(base_url: str, value: str) -> Optional[str]:
    """Absolute form of `value` against `base_url`, or None if it cannot be parsed."""
    try:
        return urljoin(base_url, value.strip())
    except ValueError:
        return None


class LinkScanner:
    """
    Collects link candidates from <a> tags while markup is still arriving.

    Every attribute value of each anchor is a candidate unless `href_only`
    is set. The first <base href> of the document is remembered and used
    when the candidates are resolved.
    """

    def __init__(self, href_only: bool = False, encoding: Optional[str] = None) -> None:
        self.href_only = href_only
        self.base_href: Optional[str] = None
        self.candidates: List[str] = []
        self._fed = False
        self._parser = HTMLPullParser(events=("start",), tag=LINK_TAGS, encoding=encoding)

    def feed(self, data: bytes) -> None:
        if not data:
            return
        self._fed = True
        self._parser.feed(data)
        self._collect()

    def close(self) -> None:
        # libxml2 refuses to close a parser that never saw a byte
        if self._fed:
            self._parser.close()
            self._collect()

    def _collect(self) -> None:
        for _, element in self._parser.read_events():
            if element.tag == "base":
                if self.base_href is None and element.get("href") is not None:
                    self.base_href = element.get("href")
            elif self.href_only:
                if element.get("href") is not None:
                    self.candidates.append(element.get("href"))
            else:
                self.candidates.extend(element.attrib.values())

    def links(self, base_url: str) -> List[str]:
        """
        Resolve the candidates seen so far to absolute URLs.

        A base tag that cannot be resolved is ignored, and so is any single
        candidate that cannot be resolved. First occurrence order is kept
        and duplicates are dropped.
        """
        if self.base_href is not None:
            base_url = resolve(base_url, self.base_href) or base_url
        resolved = (resolve(base_url, value) for value in self.candidates)
        return list(dict.fromkeys(link for link in resolved if link is not None))


def extract_links(chunks: Iterable[bytes], base_url: str, href_only: bool = False) -> List[str]:
    """Scan a document delivered in chunks and return its absolute link targets."""
    scanner = LinkScanner(href_only=href_only)
    for chunk in chunks:
        scanner.feed(chunk)
    scanner.close()
    return scanner.links(base_url)


def read_body(chunks: Iterable[bytes], max_bytes: int, deadline: float) -> Iterator[bytes]:
    """
    Pass response chunks through until `max_bytes` have been seen.

    Raises requests.Timeout once the monotonic clock passes `deadline`,
    so a server trickling data cannot hold a fetch open forever.
    """
    received = 0
    for chunk in chunks:
        if time.monotonic() > deadline:
            raise requests.Timeout(f"body not received within deadline ({received} bytes read)")
        remaining = max_bytes - received
        if len(chunk) >= remaining:
            yield chunk[:remaining]
            return
        received += len(chunk)
        yield chunk


def print_scan_line(url: str, status: Optional[int], new_links: int) -> None:
    """Print single fetch result line."""
    status_str = str(status) if status else "ERR"
    sys.stderr.write(f"  → {status_str} {url} (+{new_links} links)\n")
    sys.stderr.flush()


class LinkFetcher:
    """
    Returns the absolute link targets found on a page, never raising.

    Without an explicit `session`, each thread calling `fetch_links` gets its
    own requests.Session, so the fetcher can be shared by a prefetch pool.
    An explicit session is used from every thread as-is.
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT,
        user_agent: Optional[str] = None,
        href_only: bool = False,
        verbose: bool = False,
        max_bytes: int = DEFAULT_MAX_BYTES,
        deadline_s: float = DEFAULT_DEADLINE,
        session: Optional[requests.Session] = None,
        stats: Optional[CrawlStats] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self.href_only = href_only
        self.verbose = verbose
        self.max_bytes = max_bytes
        self.deadline_s = deadline_s
        self._session = session
        self._local = threading.local()
        if session is not None and user_agent:
            session.headers["User-Agent"] = user_agent
        self.stats = stats if stats is not None else CrawlStats()

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            if self.user_agent:
                session.headers["User-Agent"] = self.user_agent
            self._local.session = session
        return session

    def fetch_links(self, url: str) -> List[str]:
        """
        Probe `url` with HEAD and, if it is textual, stream it with GET and
        scan its anchors as the body arrives.

        Network errors, timeouts and non-2xx statuses produce an empty list.
        Markup the parser gives up on keeps whatever links were found before
        the failure.
        """
        session = self.session
        try:
            head = session.head(url, timeout=self.timeout_s, allow_redirects=True)
            head.raise_for_status()

            content_type = head.headers.get("content-type")
            textual = is_textual(content_type)
            self.stats.record_probe(textual)
            if not textual:
                if self.verbose:
                    sys.stderr.write(f"  ⊘ SKIP {url} ({content_type or 'no content-type'})\n")
                return []

            deadline = time.monotonic() + self.deadline_s
            with session.get(url, timeout=self.timeout_s, allow_redirects=True, stream=True) as resp:
                resp.raise_for_status()
                scanner = LinkScanner(
                    href_only=self.href_only,
                    encoding=declared_charset(resp.headers.get("content-type")),
                )
                body = read_body(resp.iter_content(CHUNK_SIZE), self.max_bytes, deadline)
                try:
                    for chunk in body:
                        scanner.feed(chunk)
                    scanner.close()
                except LxmlError as e:
                    self.stats.record_parse_error()
                    if self.verbose:
                        sys.stderr.write(f"  ✗ PARSE {url}: {e}\n")
                links = scanner.links(resp.url or url)
                status = resp.status_code
        except requests.HTTPError as e:
            self.stats.record_error(e.response.status_code if e.response is not None else None)
            return self._failed(url, e)
        except requests.RequestException as e:
            self.stats.record_error(None)
            return self._failed(url, e)

        self.stats.record_page(len(links))
        if self.verbose:
            print_scan_line(url, status, len(links))
        return links

    def _failed(self, url: str, error: Exception) -> List[str]:
        if self.verbose:
            sys.stderr.write(f"  ✗ ERROR {url}: {error}\n")
        return []
