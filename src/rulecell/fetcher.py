"""Remote cell content.

Cells can point at their content instead of holding it: rule text for a
URL-backed expression cell, or raw bytes for a binary cell. ``ContentFetcher``
performs the single GET, with a bounded timeout and a capped number of
redirects, and turns every transport problem into one ``ContentFetchError``.

Failure message (kept stable, callers match on it)::

    Failed to load binary content from URL: <url>, <kind> '<table name>'

Nothing is cached or retried here. Callers fetch *before* asking the
compiled unit cache for a unit, so a slow server never holds a cache lock.

Example::

    with ContentFetcher() as fetcher:
        data = fetcher.fetch("https://rules.example.com/rates.py", "rates", "1.0.0")
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import httpx

from rulecell.errors import ContentFetchError
from rulecell.logging import get_logger
from rulecell.settings import RuleCellSettings, get_settings

logger = get_logger(__name__)

FETCH_FAILURE_MESSAGE = "Failed to load binary content from URL: {url}, {kind} '{name}'"


@dataclass(frozen=True)
class FetchedContent:
    """Raw content of a URL, tagged with the table that asked for it."""

    data: bytes
    url: str
    owner_name: str
    owner_version: str
    content_type: str | None = None
    encoding: str | None = None

    def text(self) -> str:
        return self.data.decode(self.encoding or "utf-8")

    def __len__(self) -> int:
        return len(self.data)


class ContentFetcher:
    """Fetches cell content over HTTP(S).

    Args:
        settings: Timeout, redirect cap, base URL and owner kind label
        transport: Optional httpx transport (``httpx.MockTransport`` in tests)
    """

    def __init__(
        self,
        settings: RuleCellSettings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self._settings = settings or get_settings()
        self._client = httpx.Client(
            base_url=self._settings.fetch_base_url or "",
            timeout=self._settings.fetch_timeout_seconds,
            follow_redirects=True,
            max_redirects=self._settings.fetch_max_redirects,
            transport=transport,
        )

    @property
    def owner_kind(self) -> str:
        return self._settings.owner_kind_label

    def fetch_content(self, url: str, owner_name: str, owner_version: str) -> FetchedContent:
        """GET ``url`` and return its body.

        Raises:
            ContentFetchError: timeout, connection failure, non-2xx status,
                too many redirects or a malformed response
        """
        started = time.perf_counter()
        try:
            response = self._client.get(url)
            response.raise_for_status()
            data = response.content
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise self._failure(url, owner_name, owner_version, exc) from exc

        logger.debug(
            "content_fetched",
            url=url,
            table_name=owner_name,
            table_version=owner_version,
            bytes=len(data),
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        return FetchedContent(
            data=data,
            url=url,
            owner_name=owner_name,
            owner_version=str(owner_version),
            content_type=response.headers.get("content-type"),
            encoding=response.charset_encoding,
        )

    def fetch(self, url: str, owner_name: str, owner_version: str) -> bytes:
        """GET ``url`` and return the raw bytes."""
        return self.fetch_content(url, owner_name, owner_version).data

    def fetch_text(self, url: str, owner_name: str, owner_version: str) -> str:
        """GET ``url`` and decode it (response charset, UTF-8 by default).

        Raises:
            ContentFetchError: as ``fetch_content``, or the body does not
                decode with its charset
        """
        content = self.fetch_content(url, owner_name, owner_version)
        try:
            return content.text()
        except (UnicodeDecodeError, LookupError) as exc:
            raise self._failure(url, owner_name, owner_version, exc) from exc

    def _failure(
        self, url: str, owner_name: str, owner_version: str, exc: Exception
    ) -> ContentFetchError:
        status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
        logger.warning(
            "content_fetch_failed",
            url=url,
            table_name=owner_name,
            table_version=owner_version,
            http_status=status,
            error=f"{type(exc).__name__}: {exc}",
        )
        error = ContentFetchError(
            FETCH_FAILURE_MESSAGE.format(url=url, kind=self.owner_kind, name=owner_name),
            cause=exc,
        )
        error.with_context(
            url=url,
            table_name=owner_name,
            table_version=str(owner_version),
            http_status=status,
        )
        return error

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ContentFetcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


__all__ = ["ContentFetcher", "FetchedContent", "FETCH_FAILURE_MESSAGE"]
