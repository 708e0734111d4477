# loadwatch/browser/http_page.py

"""Read-only document driver that polls a page over HTTP.

Used for alert-style monitoring where no browser is available: each
:meth:`HttpPageDriver.refresh` re-fetches the page, swaps the parsed
document and reports the item nodes that appeared or vanished as a
mutation batch. Controls never resolve, so action requests against
this driver fail with ``control-not-found``.
"""

import asyncio
import hashlib
import logging
import time
from collections.abc import Callable
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from loadwatch.actions.executor import FormDefaults
from loadwatch.config.settings import Settings
from loadwatch.dom.source import SoupSource, load_conventions
from loadwatch.models.record import Record
from loadwatch.monitor.change_monitor import MutationBatch, MutationListener

# Cloudflare challenge page markers
_CF_CHALLENGE_MARKERS: tuple[str, ...] = (
    "challenges.cloudflare.com",
    "cdn-cgi/challenge-platform",
    "just a moment",
    "cf-turnstile",
    "cf_chl_opt",
)


class HttpPageDriver:
    """Fetch-and-diff driver for a page served over HTTP."""

    def __init__(
        self,
        url: str,
        conventions: dict[str, str] | None = None,
    ) -> None:
        self.url = url
        self.logger = logging.getLogger("loadwatch.browser.http")
        self.settings = Settings()
        self.conventions = conventions or load_conventions()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._source: SoupSource | None = None
        self._fingerprints: set[str] = set()
        self._listeners: list[MutationListener] = []

    # ── Mutation feed ────────────────────────────────────

    def subscribe(
        self, listener: MutationListener,
    ) -> Callable[[], None]:
        """Register *listener*; returns the matching unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> bool:
        """Re-fetch the page and emit a batch for changed item nodes.

        Returns False when the page could not be fetched; the previous
        document is kept in that case.
        """
        html = await asyncio.to_thread(self._fetch_html)
        if html is None:
            return False
        source = SoupSource.from_html(html, self.conventions)
        fingerprints = self._fingerprint(source)
        added = len(fingerprints - self._fingerprints)
        removed = len(self._fingerprints - fingerprints)
        self._source = source
        self._fingerprints = fingerprints

        if added or removed:
            self.logger.debug(
                "Refresh of %s: %d item nodes added, %d removed",
                self.url,
                added,
                removed,
            )
            batch = MutationBatch(
                added_nodes=added, removed_nodes=removed
            )
            for listener in list(self._listeners):
                listener(batch)
        return True

    async def snapshot(self) -> SoupSource:
        """The most recently fetched document (fetched on first use)."""
        if self._source is None:
            await self.refresh()
        if self._source is None:
            return SoupSource.from_html("<html></html>", self.conventions)
        return self._source

    # ── Actions (unsupported) ────────────────────────────

    async def resolve_control(self, source_ref: Any) -> Any | None:
        """Controls cannot be operated over plain HTTP."""
        self.logger.debug(
            "Read-only driver cannot resolve %r", source_ref
        )
        return None

    async def activate(self, control: Any) -> None:
        return None

    async def find_surface(self) -> Any | None:
        return None

    async def fill_surface(
        self, surface: Any, defaults: FormDefaults,
    ) -> int:
        return 0

    async def find_confirm_control(self, surface: Any) -> Any | None:
        return None

    async def success_visible(self) -> bool:
        return False

    async def surface_attached(self, surface: Any) -> bool:
        return False

    async def annotate(self, matched: list[Record]) -> None:
        """Nothing to highlight on a fetched copy."""
        return None

    # ── Fetching ─────────────────────────────────────────

    def _fingerprint(self, source: SoupSource) -> set[str]:
        """Hash the text of every item-like node."""
        nodes = source.query_all("item") or source.query_all("row")
        return {
            hashlib.sha1(node.text().encode("utf-8")).hexdigest()
            for node in nodes
        }

    def _looks_challenged(self, text: str) -> bool:
        lower = text.lower()
        for marker in _CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "Challenge page detected (marker: '%s')", marker
                )
                return True
        return False

    def _fetch_html(self) -> str | None:
        """GET the page with retries, falling back to cloudscraper."""
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self.url,
        }
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.get(
                    self.url,
                    headers=headers,
                    timeout=self.settings.REQUEST_TIMEOUT,
                )
                if resp.status_code == 200 and not self._looks_challenged(
                    resp.text
                ):
                    return str(resp.text)
                self.logger.warning(
                    "HTTP %d on attempt %d for %s",
                    resp.status_code,
                    attempt + 1,
                    self.url,
                )
            except Exception as exc:
                self.logger.warning(
                    "Request error on attempt %d: %s",
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
            time.sleep(self.settings.REQUEST_DELAY * (attempt + 1))

        self.logger.info(
            "curl_cffi exhausted, falling back to cloudscraper"
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback: Any = scraper.get(
                self.url,
                headers=headers,
                timeout=self.settings.REQUEST_TIMEOUT,
            )
            if fallback.status_code == 200:
                return str(fallback.text)
        except Exception as exc:
            self.logger.error(
                "cloudscraper fallback also failed: %s",
                exc,
                exc_info=True,
            )
        return None
