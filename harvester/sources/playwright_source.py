"""Playwright-backed implementation of the source capability."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..config import BrowserConfig, ExtractionConfig, TargetConfig
from ..errors import InteractionError, NavigationError, NotReadyError, SourceError
from .base import SourceCapability

_SCROLL_WINDOW = "() => window.scrollTo(0, document.body.scrollHeight)"
_SCROLL_CONTAINER = "el => el.scrollBy(0, el.scrollHeight)"

# Reads every visible item in one round trip. Field selectors are tried in
# order and the first non-blank text (or attribute) wins.
_READ_SCRIPT = """
({ itemSelector, expandSelector, expandLimit, fields }) => {
  const items = Array.from(document.querySelectorAll(itemSelector));
  if (expandSelector) {
    let clicks = 0;
    for (const item of items) {
      if (clicks >= expandLimit) break;
      const button = item.querySelector(expandSelector);
      if (button) {
        button.click();
        clicks += 1;
      }
    }
  }
  const readField = (item, field) => {
    const selectors = field.selectors.length ? field.selectors : [null];
    for (const selector of selectors) {
      const el = selector ? item.querySelector(selector) : item;
      if (!el) continue;
      const raw = field.attribute
        ? el.getAttribute(field.attribute)
        : (el.innerText || el.textContent);
      if (raw && raw.trim()) return raw.trim();
    }
    return null;
  };
  return items.map((item) => {
    const record = {};
    for (const field of fields) record[field.name] = readField(item, field);
    return record;
  });
}
"""


@dataclass
class PlaywrightHandle:
    playwright: Any
    browser: Any
    context: Any
    page: Any
    target: TargetConfig | None = None


class PlaywrightSource(SourceCapability):
    """Drive a Chromium page through the sync Playwright API.

    Every ``open_source`` call launches its own browser so that a retry starts
    from a clean page; handles are never shared between targets.
    """

    def __init__(
        self,
        browser_config: BrowserConfig | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.browser_config = browser_config or BrowserConfig()
        self.logger = logger or structlog.get_logger("harvester.sources.playwright")

    def open_source(self) -> PlaywrightHandle:
        cfg = self.browser_config
        playwright = sync_playwright().start()
        try:
            browser = playwright.chromium.launch(headless=cfg.headless)
            context_kwargs: dict[str, Any] = {
                "locale": cfg.locale,
                "viewport": {"width": cfg.viewport_size[0], "height": cfg.viewport_size[1]},
            }
            if cfg.user_agent:
                context_kwargs["user_agent"] = cfg.user_agent
            if cfg.storage_state and cfg.storage_state.exists():
                context_kwargs["storage_state"] = str(cfg.storage_state)
            context = browser.new_context(**context_kwargs)
            page = context.new_page()
        except PlaywrightError as exc:
            playwright.stop()
            raise SourceError(f"Could not start browser: {exc}") from exc
        return PlaywrightHandle(playwright=playwright, browser=browser, context=context, page=page)

    def close_source(self, handle: PlaywrightHandle) -> None:
        for label, closer in (
            ("page", handle.page.close),
            ("context", handle.context.close),
            ("browser", handle.browser.close),
            ("playwright", handle.playwright.stop),
        ):
            try:
                closer()
            except Exception as exc:  # noqa: BLE001
                self.logger.debug("source_close_error", resource=label, error=str(exc))

    def navigate(self, handle: PlaywrightHandle, target: TargetConfig) -> None:
        handle.target = target
        try:
            handle.page.goto(
                target.location,
                wait_until="domcontentloaded",
                timeout=target.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"Navigation timeout for {target.location}: {exc}") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Navigation failed for {target.location}: {exc}") from exc

    def wait_for_ready(self, handle: PlaywrightHandle, selector: str, timeout_ms: int) -> None:
        try:
            handle.page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NotReadyError(f"Selector {selector!r} not visible after {timeout_ms} ms") from exc
        except PlaywrightError as exc:
            raise NotReadyError(f"Waiting for {selector!r} failed: {exc}") from exc

    def reveal_more(self, handle: PlaywrightHandle) -> None:
        target = handle.target
        if target is None:
            raise InteractionError("reveal_more called before navigate")
        reveal = target.reveal
        page = handle.page
        try:
            if reveal.mode == "click":
                control = page.locator(reveal.click_selector).first
                if control.count() == 0:
                    raise InteractionError(f"Pager control {reveal.click_selector!r} not found")
                control.click(timeout=target.ready_timeout_ms)
            elif reveal.container_selector:
                container = page.locator(reveal.container_selector).first
                if container.count() == 0:
                    raise InteractionError(
                        f"Scroll container {reveal.container_selector!r} not found"
                    )
                container.evaluate(_SCROLL_CONTAINER)
            else:
                page.evaluate(_SCROLL_WINDOW)
        except PlaywrightTimeoutError as exc:
            raise InteractionError(f"Reveal control unresponsive: {exc}") from exc
        except PlaywrightError as exc:
            raise InteractionError(f"Reveal failed: {exc}") from exc

    def read_records(
        self, handle: PlaywrightHandle, extraction: ExtractionConfig
    ) -> list[dict[str, Any]]:
        argument = {
            "itemSelector": extraction.item_selector,
            "expandSelector": extraction.expand_selector,
            "expandLimit": extraction.expand_limit,
            "fields": [
                {"name": spec.name, "selectors": list(spec.selectors), "attribute": spec.attribute}
                for spec in extraction.fields
            ],
        }
        try:
            records = handle.page.evaluate(_READ_SCRIPT, argument)
        except PlaywrightError as exc:
            raise InteractionError(f"Reading records failed: {exc}") from exc
        return [record for record in records or [] if isinstance(record, dict)]


__all__ = ["PlaywrightHandle", "PlaywrightSource"]
