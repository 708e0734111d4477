# loadwatch/browser/playwright_page.py

"""Live document driver on top of a Playwright page.

A MutationObserver injected into the page forwards "nodes added"
batches to Python through an exposed binding; snapshots are the
rendered HTML parsed with BeautifulSoup; actions go through locators
re-resolved from each record's CSS path.
"""

import logging
import re
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import Locator, Page, async_playwright

from loadwatch.actions.executor import FormDefaults
from loadwatch.config.settings import Settings
from loadwatch.dom.source import SoupSource, SourceRef, load_conventions
from loadwatch.models.record import Record
from loadwatch.monitor.change_monitor import MutationBatch, MutationListener

logger = logging.getLogger("loadwatch.browser.playwright")

_BINDING_NAME = "__loadwatchMutations"

_OBSERVER_SCRIPT = """
(() => {
  if (window.__loadwatchObserver) return;
  const start = () => {
    const target = document.body || document.documentElement;
    const observer = new MutationObserver((mutations) => {
      let added = 0;
      let removed = 0;
      for (const m of mutations) {
        if (m.type !== 'childList') continue;
        added += m.addedNodes.length;
        removed += m.removedNodes.length;
      }
      if ((added || removed) && window.__loadwatchMutations) {
        window.__loadwatchMutations({added, removed});
      }
    });
    observer.observe(target, {childList: true, subtree: true});
    window.__loadwatchObserver = observer;
  };
  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', start);
  } else {
    start();
  }
})();
"""

_FILL_SCRIPT = """
(surface, defaults) => {
  let filled = 0;
  const fire = (el) => {
    el.dispatchEvent(new Event('input', {bubbles: true}));
    el.dispatchEvent(new Event('change', {bubbles: true}));
  };
  if (defaults.acceptTerms) {
    for (const box of surface.querySelectorAll('input[type="checkbox"]')) {
      const label = ((box.id || '') + ' ' + (box.name || '') + ' ' +
        (box.parentElement ? box.parentElement.textContent : '')).toLowerCase();
      if ((label.includes('terms') || label.includes('agree')) && !box.checked) {
        box.checked = true;
        fire(box);
        filled += 1;
      }
    }
  }
  for (const input of surface.querySelectorAll('input[required]')) {
    if (input.value !== '') continue;
    const key = ((input.id || '') + ' ' + (input.name || '') + ' ' +
      (input.type || '')).toLowerCase();
    let value = '';
    if (key.includes('phone') || key.includes('tel')) value = defaults.phone;
    else if (key.includes('email')) value = defaults.email;
    if (!value) continue;
    input.value = value;
    fire(input);
    filled += 1;
  }
  return filled;
}
"""

_ANNOTATE_SCRIPT = """
(marks) => {
  if (!document.getElementById('loadwatch-style')) {
    const style = document.createElement('style');
    style.id = 'loadwatch-style';
    style.textContent =
      '.loadwatch-match{outline:2px solid #3869D4;}' +
      '.loadwatch-fresh{outline:2px solid #FF5722;}';
    document.head.appendChild(style);
  }
  for (const el of document.querySelectorAll('.loadwatch-match, .loadwatch-fresh')) {
    el.classList.remove('loadwatch-match', 'loadwatch-fresh');
  }
  for (const mark of marks) {
    const el = document.querySelector(mark.path);
    if (!el) continue;
    el.classList.add(mark.fresh ? 'loadwatch-fresh' : 'loadwatch-match');
  }
}
"""

_BOOK_TEXT_RE = re.compile(r"^\s*book\s*$", re.IGNORECASE)
_CONFIRM_TEXT_RE = re.compile(r"confirm|book", re.IGNORECASE)


class PlaywrightPageDriver:
    """Document driver for a live page in a Playwright browser."""

    def __init__(
        self,
        page: Page,
        conventions: dict[str, str] | None = None,
    ) -> None:
        self.page = page
        self.conventions = conventions or load_conventions()
        self._listeners: list[MutationListener] = []
        self._installed = False

    async def install(self) -> None:
        """Expose the mutation binding and inject the observer."""
        if self._installed:
            return
        await self.page.expose_binding(_BINDING_NAME, self._on_binding)
        await self.page.add_init_script(_OBSERVER_SCRIPT)
        await self.page.evaluate(_OBSERVER_SCRIPT)
        self._installed = True
        logger.info("Mutation observer installed on %s", self.page.url)

    def _on_binding(self, _source: Any, payload: Any) -> None:
        data = payload if isinstance(payload, dict) else {}
        batch = MutationBatch(
            added_nodes=int(data.get("added", 0) or 0),
            removed_nodes=int(data.get("removed", 0) or 0),
        )
        for listener in list(self._listeners):
            listener(batch)

    # ── Mutation feed / snapshots ────────────────────────

    def subscribe(
        self, listener: MutationListener,
    ) -> Callable[[], None]:
        """Register *listener*; returns the matching unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def snapshot(self) -> SoupSource:
        """Parse the currently rendered DOM."""
        html = await self.page.content()
        return SoupSource.from_html(html, self.conventions)

    async def annotate(self, matched: list[Record]) -> None:
        """Outline matched entries, fresh ones in a distinct colour."""
        marks = [
            {"path": r.source_ref.path, "fresh": r.is_fresh}
            for r in matched
            if isinstance(r.source_ref, SourceRef)
        ]
        await self.page.evaluate(_ANNOTATE_SCRIPT, marks)

    # ── Actions ──────────────────────────────────────────

    async def _first_visible(self, locator: Locator) -> Locator | None:
        if await locator.count() == 0:
            return None
        first = locator.first
        if not await first.is_visible():
            return None
        return first

    async def resolve_control(self, source_ref: Any) -> Locator | None:
        """The item's primary (book) control, if still attached."""
        if not isinstance(source_ref, SourceRef):
            return None
        item = self.page.locator(source_ref.path)
        if await item.count() == 0:
            logger.debug("Item %s detached", source_ref.path)
            return None

        by_text = item.first.locator("button").filter(has_text=_BOOK_TEXT_RE)
        control = await self._first_visible(by_text)
        if control is None:
            control = await self._first_visible(
                item.first.locator(self.conventions["book_button"])
            )
        if control is None or not await control.is_enabled():
            return None
        return control

    async def activate(self, control: Locator) -> None:
        """Simulated activation that does not wait for actionability."""
        await control.evaluate("el => el.click()")

    async def find_surface(self) -> Locator | None:
        return await self._first_visible(
            self.page.locator(self.conventions["surface"])
        )

    async def fill_surface(
        self, surface: Locator, defaults: FormDefaults,
    ) -> int:
        filled: int = await surface.evaluate(
            _FILL_SCRIPT,
            {
                "phone": defaults.phone,
                "email": defaults.email,
                "acceptTerms": defaults.accept_terms,
            },
        )
        return filled

    async def find_confirm_control(
        self, surface: Locator,
    ) -> Locator | None:
        selector = self.conventions["confirm_button"]
        for scope in (surface, self.page.locator("body")):
            control = await self._first_visible(scope.locator(selector))
            if control is None:
                control = await self._first_visible(
                    scope.locator("button").filter(
                        has_text=_CONFIRM_TEXT_RE
                    )
                )
            if control is not None:
                return control
        return None

    async def success_visible(self) -> bool:
        found = await self._first_visible(
            self.page.locator(self.conventions["success_indicator"])
        )
        return found is not None

    async def surface_attached(self, surface: Locator) -> bool:
        return await self._first_visible(surface) is not None


@asynccontextmanager
async def open_page(
    url: str, headless: bool | None = None,
) -> AsyncIterator[Page]:
    """Launch Chromium, open *url* and yield the page."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=(
                Settings.BROWSER_HEADLESS if headless is None
                else headless
            )
        )
        try:
            page = await browser.new_page()
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=Settings.NAVIGATION_TIMEOUT_MS,
            )
            yield page
        finally:
            await browser.close()
