"""
Reference Fetcher
=================

Retrieve one URL into one local file with bounded retries.

Retry policy:
- up to ``max_attempts`` (default 5) attempts per file
- a failed attempt (network error, or a non-2xx status other than 404)
  waits ``backoff_base ** attempt`` seconds before the next one: 2, 4, 8, 16
- a 404 is a soft skip: logged, no file produced, no retries

Bodies are streamed to ``<target_dir>/<last URL path segment>`` via a
uniquely named ``.part`` file that replaces the destination once complete,
so concurrent downloads of the same file name never share a temp file.

Usage:
    from refman.fetcher import Fetcher

    fetcher = Fetcher()
    path = fetcher.fetch("https://host/hg38.fa", Path("/tmp/ref"))
    if path is None:
        print("not found upstream")
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional, Union
from urllib.parse import unquote, urlparse

import requests

from .config import DownloadSettings
from .errors import FetchError, InvalidUrlError, NameExtractionError

logger = logging.getLogger(__name__)

SOFT_SKIP_STATUS = 404
HEAD_UNSUPPORTED = (405, 501)


def uri_to_filename(url: str) -> str:
    """
    Extract the file name from the final segment of a URL path.

    "https://example.com/files/data.fa.gz" -> "data.fa.gz"

    Raises:
        NameExtractionError: The URL has no path, or ends in a slash
    """
    path = urlparse(url).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    if not name or name in (".", ".."):
        raise NameExtractionError(url)
    return name


class Fetcher:
    """
    HTTP downloader shared by every task of a sync.

    A single ``requests.Session`` is reused across threads; only ``get`` and
    ``head`` are called on it, with no per-request session mutation.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        settings: Optional[DownloadSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or DownloadSettings()
        self.session = session or self._create_session()
        self.sleep = sleep

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": self.settings.user_agent})
        return session

    def close(self) -> None:
        self.session.close()

    def backoff_delay(self, attempt: int) -> float:
        return self.settings.backoff_base ** attempt

    def check_url(self, url: str) -> str:
        """
        Confirm a URL is reachable before it is registered.

        Returns:
            The final URL after redirects

        Raises:
            InvalidUrlError: Unsupported scheme, unreachable host, or status >= 400
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidUrlError(url, "only http and https URLs with a host are supported")

        logger.debug(f"Checking the requested URL '{url}' to make sure it's valid")
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.settings.timeout)
            if response.status_code in HEAD_UNSUPPORTED:
                logger.debug(f"HEAD not supported by {parsed.netloc}; retrying check with GET")
                response = self.session.get(
                    url, stream=True, allow_redirects=True, timeout=self.settings.timeout
                )
                response.close()
        except requests.RequestException as e:
            raise InvalidUrlError(url, str(e)) from e

        if response.status_code >= 400:
            raise InvalidUrlError(url, f"HTTP {response.status_code}")

        resolved = response.url or url
        if resolved != url:
            logger.warning(
                f"The URL {url} redirected to {resolved}. Proceeding, though a different "
                "file than expected may be downloaded."
            )
        else:
            logger.info(f"The URL {url} was checked with status code {response.status_code}")
        return resolved

    def fetch(self, url: str, target_dir: Union[str, Path]) -> Optional[Path]:
        """
        Download ``url`` into ``target_dir``.

        Returns:
            Path of the written file, or None when the server answered 404

        Raises:
            NameExtractionError: No file name can be derived from the URL
            FetchError: Every attempt failed, or the file could not be written
        """
        file_path = Path(target_dir) / uri_to_filename(url)
        max_attempts = self.settings.max_attempts

        for attempt in range(1, max_attempts + 1):
            logger.debug(f"Performing attempt #{attempt} to download from {url}")
            try:
                return self._download(url, file_path)
            except requests.RequestException as e:
                if attempt >= max_attempts:
                    logger.error(f"Failed to download {url} after {attempt} attempts: {e}")
                    raise FetchError(url, attempt, e) from e
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Attempt {attempt} failed for URL {url}: {e}. "
                    f"Retrying in {delay:g} seconds..."
                )
                self.sleep(delay)
            except OSError as e:
                logger.error(f"Could not write {file_path}: {e}")
                raise FetchError(url, attempt, e) from e

        raise FetchError(url, max_attempts)

    def _download(self, url: str, file_path: Path) -> Optional[Path]:
        response = self.session.get(url, stream=True, timeout=self.settings.timeout)
        try:
            if response.status_code == SOFT_SKIP_STATUS:
                logger.warning(f"File not found: {url}")
                return None
            if not 200 <= response.status_code < 300:
                raise requests.HTTPError(
                    f"HTTP {response.status_code} for {url}", response=response
                )

            file_path.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            part = tempfile.NamedTemporaryFile(
                dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".part", delete=False
            )
            part_path = Path(part.name)
            try:
                with part:
                    for chunk in response.iter_content(chunk_size=self.settings.chunk_size):
                        if chunk:
                            part.write(chunk)
                            written += len(chunk)
                os.replace(part_path, file_path)
            finally:
                if part_path.exists():
                    part_path.unlink()
        finally:
            response.close()

        logger.info(f"Downloaded {url} to {file_path} ({written} bytes)")
        return file_path
