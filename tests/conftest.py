import io
from typing import Dict, List, Optional

import pytest
import requests


def make_response(
    url: str,
    status: int = 200,
    content_type: Optional[str] = "text/html",
    body: bytes = b"",
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Error"
    resp.url = url
    resp.raw = io.BytesIO(body)
    if content_type is not None:
        resp.headers["Content-Type"] = content_type
    return resp


class FakeSession:
    """Serves canned pages instead of talking to the network."""

    def __init__(self, pages: Dict[str, dict]):
        self.pages = pages
        self.headers: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.kwargs: List[dict] = []

    def _respond(self, method: str, url: str, **kwargs) -> requests.Response:
        self.calls.append((method, url))
        self.kwargs.append(kwargs)
        page = self.pages.get(url)
        if page is None:
            raise requests.ConnectionError(f"no route to {url}")
        error = page.get(method.lower() + "_error")
        if error is not None:
            raise error
        return make_response(
            page.get("final_url", url),
            status=page.get("status", 200),
            content_type=page.get("content_type", "text/html"),
            body=page.get("body", b"") if method == "GET" else b"",
        )

    def head(self, url, **kwargs):
        return self._respond("HEAD", url, **kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)


class GraphFetcher:
    """Fetcher over an in-memory link graph; unknown URLs have no links."""

    def __init__(self, graph: Dict[str, List[str]]):
        self.graph = graph
        self.calls: List[str] = []

    def fetch_links(self, url: str) -> List[str]:
        self.calls.append(url)
        return list(self.graph.get(url, []))


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def graph_fetcher():
    return GraphFetcher
