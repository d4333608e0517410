"""
Shared fixtures for refman tests.

Network access is replaced by FakeSession, which serves canned responses
per URL and records every request made through it.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
import requests

from refman.config import DownloadSettings, RefmanConfig
from refman.fetcher import Fetcher


FASTA_TEXT = ">chr1 test contig\nACGTACGTAC\nGTNNacgt\n>chr2\nTTTTGGGGCCCC\n"
GFF_TEXT = (
    "##gff-version 3\n"
    "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=gene1\n"
    "chr1\tsrc\texon\t2\t8\t0.5\t+\t0\tParent=gene1\n"
)
GTF_TEXT = 'chr1\tsrc\texon\t1\t10\t.\t+\t.\tgene_id "g1"; transcript_id "t1";\n'
BED_TEXT = "track name=test\nchr1\t0\t10\tfeat1\nchr2\t5\t20\n"
GFA_TEXT = "H\tVN:Z:1.0\nS\t1\tACGT\nS\t2\tTTGG\nL\t1\t+\t2\t-\t0M\n"
GENBANK_TEXT = (
    "LOCUS       TEST0001" + " " * 18 + "12 bp" + " " * 4 + "DNA" + " " * 5
    + "linear" + " " * 3 + "UNK 01-JAN-1980\n"
    "DEFINITION  Test record.\n"
    "ACCESSION   TEST0001\n"
    "VERSION     TEST0001.1\n"
    "FEATURES             Location/Qualifiers\n"
    "ORIGIN\n"
    "        1 acgtacgtac gt\n"
    "//\n"
)


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response."""

    def __init__(self, status_code: int = 200, body: bytes = b"", url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start:start + chunk_size]

    def close(self):
        self.closed = True


Route = Union[FakeResponse, Exception, List[Union[FakeResponse, Exception]]]


class FakeSession:
    """
    Serve canned responses per URL.

    A route may be a single response, an exception to raise, or a list that
    is consumed one item per request (the last item repeats).
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.get_calls: List[str] = []
        self.head_calls: List[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def _next(self, url: str):
        with self._lock:
            route = self.routes.get(url)
            if route is None:
                return FakeResponse(status_code=404, url=url)
            if isinstance(route, list):
                item = route.pop(0) if len(route) > 1 else route[0]
            else:
                item = route
        if isinstance(item, Exception):
            raise item
        if not item.url:
            item.url = url
        return item

    def get(self, url, **kwargs):
        with self._lock:
            self.get_calls.append(url)
        return self._next(url)

    def head(self, url, **kwargs):
        with self._lock:
            self.head_calls.append(url)
        return self._next(url)

    def close(self):
        self.closed = True


def ok(body: Union[str, bytes]) -> FakeResponse:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return FakeResponse(status_code=200, body=body)


def connection_error(message: str = "connection refused") -> requests.ConnectionError:
    return requests.ConnectionError(message)


@pytest.fixture
def sleeps():
    """Record backoff delays instead of sleeping."""
    return []


@pytest.fixture
def make_fetcher(sleeps):
    def _make(routes=None, **settings) -> Fetcher:
        return Fetcher(
            session=FakeSession(routes),
            settings=DownloadSettings(**settings),
            sleep=sleeps.append,
        )
    return _make


@pytest.fixture
def config() -> RefmanConfig:
    return RefmanConfig(download=DownloadSettings(max_workers=4))


@pytest.fixture
def write_file(tmp_path):
    def _write(name: str, content: Union[str, bytes]) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
        return path
    return _write
