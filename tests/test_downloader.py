import asyncio

import aiohttp

from gfw2dnsmasq import downloader
from gfw2dnsmasq.downloader import FetchResult, download_feed, fetch_url


class FakeResponse:
    def __init__(self, status=200, body=b"", read_error=None):
        self.status = status
        self._body = body
        self._read_error = read_error

    async def read(self):
        if self._read_error is not None:
            raise self._read_error
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self._response = response
        self._error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self._error is not None:
            raise self._error
        return self._response


URL = "https://feeds.test.invalid/list.txt"


def _fetch(session, path):
    return asyncio.run(fetch_url(session, URL, path, timeout=5))


def _leftovers(tmp_path, keep):
    return [p.name for p in tmp_path.iterdir() if p.name != keep]


def test_fetch_writes_file(tmp_path):
    path = tmp_path / "list.txt"
    session = FakeSession(FakeResponse(body=b"||example.com^\n"))

    result = _fetch(session, path)

    assert result == FetchResult(URL, success=True)
    assert path.read_bytes() == b"||example.com^\n"
    assert _leftovers(tmp_path, "list.txt") == []
    assert session.calls[0][1]["allow_redirects"] is True


def test_http_error_keeps_existing_file(tmp_path):
    path = tmp_path / "list.txt"
    path.write_text("old.com\n")

    result = _fetch(FakeSession(FakeResponse(status=404)), path)

    assert not result.success
    assert result.error == "HTTP 404"
    assert path.read_text() == "old.com\n"
    assert _leftovers(tmp_path, "list.txt") == []


def test_connection_error_is_tolerated(tmp_path):
    path = tmp_path / "list.txt"

    result = _fetch(FakeSession(error=aiohttp.ClientConnectionError("unreachable")), path)

    assert not result.success
    assert "unreachable" in result.error
    assert not path.exists()
    assert _leftovers(tmp_path, "list.txt") == []


def test_timeout_is_tolerated(tmp_path):
    path = tmp_path / "list.txt"

    result = _fetch(FakeSession(FakeResponse(read_error=asyncio.TimeoutError())), path)

    assert result == FetchResult(URL, success=False, error="Timeout")
    assert not path.exists()


def test_download_feed_reports_failure(tmp_path, monkeypatch, capsys):
    async def failing_fetch(url, output_path, timeout):
        return FetchResult(url, success=False, error="HTTP 503")

    monkeypatch.setattr(downloader, "fetch_feed", failing_fetch)

    result = download_feed(str(tmp_path / "list.txt"), URL)

    assert not result.success
    err = capsys.readouterr().err
    assert "Fetching upstream gfwlist" in err
    assert "HTTP 503" in err
