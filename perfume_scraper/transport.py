"""HTTP download and pacing helpers."""

import os
import random
import time
from pathlib import Path
from typing import Callable, Optional, Union
from urllib.parse import urljoin

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential


BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"
REDIRECT_STATUSES = {301, 302, 303, 307, 308}
CHUNK_SIZE = 64 * 1024


class DownloadError(Exception):
    """Base class for download failures."""
    pass


class HttpStatusError(DownloadError):
    """Raised when the server answers with a non-200, non-redirect status."""

    def __init__(self, status_code: int, url: str = ""):
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code}")


class TransportError(DownloadError):
    """Raised on DNS, connection or read failures."""

    def __init__(self, cause: Exception, url: str = ""):
        self.cause = cause
        self.url = url
        super().__init__(f"Transport error: {cause}")


class TooManyRedirectsError(DownloadError):
    """Raised when a redirect chain exceeds the allowed depth."""

    def __init__(self, max_redirects: int, url: str = ""):
        self.max_redirects = max_redirects
        self.url = url
        super().__init__(f"Too many redirects (> {max_redirects}) starting at {url}")


def random_delay(min_ms: int, max_ms: int, sleep: Callable[[float], None] = time.sleep) -> float:
    """Sleep for a uniformly random duration between min_ms and max_ms.

    Returns:
        Seconds slept.
    """
    low, high = sorted((int(min_ms), int(max_ms)))
    seconds = random.randint(low, high) / 1000.0
    sleep(seconds)
    return seconds


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _download_once(
    http: requests.Session,
    url: str,
    destination: Path,
    timeout: float,
    max_redirects: int,
) -> None:
    partial = destination.with_name(destination.name + ".part")
    current_url = url
    hops = 0

    while True:
        try:
            response = http.get(
                current_url,
                headers={"User-Agent": BROWSER_USER_AGENT},
                stream=True,
                allow_redirects=False,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            _discard(partial)
            raise TransportError(exc, current_url) from exc

        with response:
            if response.status_code in REDIRECT_STATUSES:
                _discard(partial)
                location = response.headers.get("Location")
                if not location:
                    raise HttpStatusError(response.status_code, current_url)
                hops += 1
                if hops > max_redirects:
                    raise TooManyRedirectsError(max_redirects, url)
                next_url = urljoin(current_url, location)
                logger.debug(f"Redirect {response.status_code}: {current_url} -> {next_url}")
                current_url = next_url
                continue

            if response.status_code != 200:
                _discard(partial)
                raise HttpStatusError(response.status_code, current_url)

            try:
                with open(partial, "wb") as fh:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
            except requests.RequestException as exc:
                _discard(partial)
                raise TransportError(exc, current_url) from exc
            except OSError:
                _discard(partial)
                raise

        os.replace(partial, destination)
        return


def download_resource(
    url: str,
    destination: Union[str, Path],
    *,
    timeout: float = 30,
    max_redirects: int = 5,
    attempts: int = 3,
    session: Optional[requests.Session] = None,
) -> Path:
    """Download url to destination, following redirects.

    The body is streamed to a ``.part`` sibling and renamed into place only
    once complete, so destination never holds a truncated file.

    Raises:
        HttpStatusError: Non-200 final status.
        TransportError: Network failure after all attempts.
        TooManyRedirectsError: Redirect chain longer than max_redirects.
    """
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    http = session or requests.Session()

    try:
        for attempt in Retrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying download ({attempt.retry_state.attempt_number}/{attempts}): {url}")
                _download_once(http, url, destination, timeout, max_redirects)
    finally:
        if session is None:
            http.close()

    return destination
