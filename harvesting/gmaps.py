"""Google Maps review list backed by a Playwright page.

Browser session handling, listing navigation (reviews tab, sort order) and
reading review cards. Card HTML is parsed with scrapling so the field
extraction can be exercised without a browser.
"""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Sequence
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from scrapling.parser import Selector

from config.settings import settings
from core.identity import NO_REVIEW_TEXT
from core.models import RawItemRecord
from harvesting.base import RenderReport, ReviewSource

log = logging.getLogger(__name__)

UNKNOWN_DATE = "Unknown date"
OWNER_RESPONSE_MARKER = "Response from the owner"
DELETED_REVIEW_MARKER = "This review is no longer available."

REVIEWS_CONTAINER_CANDIDATES = [
    "div.m6QErb.DxyBCb.kA9KIf.dS8AEf.XiKgde",
    "div.m6QErb.DxyBCb.kA9KIf.dS8AEf",
    "div.m6QErb.DxyBCb",
]
REVIEW_CARD_SELECTOR = "div.jftiEf"
AUTHOR_SELECTOR = ".d4r55"
BODY_SELECTORS = ["div.MyEned .wiI7pd", "div.MyEned"]
DATE_SELECTOR = "span.rsqaWe"
STAR_SELECTOR = "span[aria-label*='star']"
EXPAND_BUTTON_SELECTOR = "button.w8nwRe"
ACTIONS_BUTTON_SELECTOR = "button[aria-label^='Actions for']"
SHARE_MENU_ITEM_SELECTOR = "div[role='menuitemradio'], div[aria-checked='false']"
SHARE_INPUT_SELECTOR = "input[type]"

_AGO_RE = re.compile(r"\bago\b", re.IGNORECASE)
_RATING_RE = re.compile(r"(\d+)")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)

_SCROLL_JS = """
(payload) => {
    for (const selector of payload.selectors) {
        const container = document.querySelector(selector);
        if (container) {
            container.scrollBy(0, payload.step);
            return true;
        }
    }
    return false;
}
"""


class SortOrder(str, enum.Enum):
    MOST_RELEVANT = "Most relevant"
    NEWEST = "Newest"
    HIGHEST_RATING = "Highest rating"
    LOWEST_RATING = "Lowest rating"


class ListingError(RuntimeError):
    """A control or container the review list depends on is missing."""


# ── pure helpers ─────────────────────────────────────────────────────


def maps_url_with_language(url: str, language: str = "en") -> str:
    u = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(u.query, keep_blank_values=True) if k != "hl"]
    query.append(("hl", language))
    return urlunparse(u._replace(query=urlencode(query)))


def parse_rating(label: str | None) -> int | None:
    """First integer in a star label ("4 stars", "Rated 1.0 out of 5")."""
    if not label:
        return None
    m = _RATING_RE.search(label)
    if not m:
        return None
    value = int(m.group(1))
    return value if 1 <= value <= 5 else None


def _first_text(root: Selector, selector: str) -> str:
    found = root.css(selector)
    if not found:
        return ""
    return str(found[0].get_all_text(separator="\n", strip=True))


def parse_review_card(html: str, share_url: str = "") -> RawItemRecord | None:
    """Read one review card's fields from its outer HTML.

    Returns None for cards without an author or a star rating, which are
    placeholders rather than reviews.
    """
    # Line breaks become text so multi-line reviews read as one text node.
    root = Selector(_BR_RE.sub("\n", html))

    author = _first_text(root, AUTHOR_SELECTOR)
    if not author:
        buttons = root.css("button")
        if len(buttons) >= 2:
            author = str(buttons[1].get_all_text(separator="\n", strip=True))
    author = author.split("\n")[0].strip()
    if not author:
        return None

    stars = root.css(STAR_SELECTOR)
    if not stars:
        return None
    rating_label = (stars[0].attrib.get("aria-label") or "").strip()

    body = ""
    for selector in BODY_SELECTORS:
        body = _first_text(root, selector)
        if body:
            break

    posted_at = _first_text(root, DATE_SELECTOR)
    if not _AGO_RE.search(posted_at):
        posted_at = ""
        for span in root.css("span"):
            text = str(span.get_all_text(strip=True))
            if _AGO_RE.search(text):
                posted_at = text
                break

    all_text = str(root.get_all_text(separator=" ", strip=True))

    return RawItemRecord(
        author_name=author,
        rating_value=parse_rating(rating_label),
        rating_label=rating_label,
        body_text=body or NO_REVIEW_TEXT,
        posted_at_raw=posted_at or UNKNOWN_DATE,
        has_owner_response=OWNER_RESPONSE_MARKER in all_text,
        share_url=share_url,
    )


# ── browser session ─────────────────────────────────────────────────


class BrowserSession:
    """Launches Chromium and yields a single English-locale page."""

    def __init__(self, *, headless: bool | None = None, locale: str | None = None) -> None:
        self._headless = settings.BROWSER_HEADLESS if headless is None else headless
        self._locale = locale or settings.BROWSER_LOCALE
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    async def __aenter__(self) -> Page:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=["--no-sandbox", f"--lang={self._locale}"],
            )
            self._context = await self._browser.new_context(
                locale=self._locale,
                extra_http_headers={"Accept-Language": f"{self._locale},en"},
            )
            return await self._context.new_page()
        except Exception:
            await self.close()
            raise

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None


# ── listing navigation ──────────────────────────────────────────────


async def open_reviews_tab(page: Page) -> None:
    tab = page.locator("button[role='tab']", has_text="Reviews")
    if await tab.count() == 0:
        raise ListingError("Reviews tab not found")
    await tab.first.click()


async def sort_reviews_by(page: Page, order: SortOrder, wait_ms: int = 5000) -> bool:
    """Pick a sort order from the reviews "Sort" menu.

    A missing control is logged and reported as False; the list is then
    harvested in whatever order the page shows.
    """
    try:
        sort_btn = page.locator("button", has_text="Sort")
        if await sort_btn.count() == 0:
            raise ListingError("Sort button not found")
        await sort_btn.first.click()
        await page.wait_for_timeout(wait_ms)

        option = page.locator("div[role='menuitemradio']", has_text=order.value)
        if await option.count() == 0:
            raise ListingError(f"'{order.value}' option not found")
        if await option.first.get_attribute("aria-checked") != "true":
            await option.first.click()
        await page.wait_for_timeout(wait_ms)
        return True
    except (ListingError, PlaywrightError) as e:
        log.warning("Could not sort reviews by %s: %s", order.value, e)
        return False


async def open_listing(page: Page, url: str, order: SortOrder) -> None:
    """Load a place page in English, open its reviews and sort them."""
    await page.goto(maps_url_with_language(url, settings.MAPS_LANGUAGE), wait_until="networkidle")
    await open_reviews_tab(page)
    await sort_reviews_by(page, order)
    await page.evaluate(_SCROLL_JS, {"selectors": REVIEWS_CONTAINER_CANDIDATES, "step": 500})
    try:
        await page.wait_for_selector(REVIEW_CARD_SELECTOR, timeout=settings.REVIEWS_WAIT_TIMEOUT_MS)
    except PlaywrightTimeoutError:
        log.warning("No reviews rendered within %d ms", settings.REVIEWS_WAIT_TIMEOUT_MS)


async def is_review_deleted(page: Page, url: str) -> bool:
    await page.goto(maps_url_with_language(url, settings.MAPS_LANGUAGE), wait_until="networkidle", timeout=0)
    headline = page.locator("p.fontHeadlineSmall")
    if await headline.count() == 0:
        return False
    return DELETED_REVIEW_MARKER in (await headline.first.inner_text())


# ── review source ───────────────────────────────────────────────────


class GoogleMapsReviewSource(ReviewSource):
    """The rendered reviews panel of an opened Google Maps listing."""

    def __init__(
        self,
        page: Page,
        *,
        scroll_step_px: int | None = None,
        render_wait_ms: int | None = None,
        expand_wait_ms: int | None = None,
        share_dialog_wait_ms: int | None = None,
        capture_share_urls: bool | None = None,
    ) -> None:
        self._page = page
        self._step = scroll_step_px or settings.SCROLL_STEP_PX
        self._render_wait_ms = (
            settings.RENDER_WAIT_MS if render_wait_ms is None else render_wait_ms
        )
        self._expand_wait_ms = (
            settings.EXPAND_WAIT_MS if expand_wait_ms is None else expand_wait_ms
        )
        self._share_wait_ms = (
            settings.SHARE_DIALOG_WAIT_MS if share_dialog_wait_ms is None else share_dialog_wait_ms
        )
        self._capture_share_urls = (
            settings.CAPTURE_SHARE_URLS if capture_share_urls is None else capture_share_urls
        )
        self._reported_total: int | None = None

    async def reveal_more(self) -> RenderReport:
        scrolled = await self._page.evaluate(
            _SCROLL_JS, {"selectors": REVIEWS_CONTAINER_CANDIDATES, "step": self._step}
        )
        if not scrolled:
            raise ListingError("Reviews scroll container not found")
        await self._page.wait_for_timeout(self._render_wait_ms)
        total = await self._page.locator(REVIEW_CARD_SELECTOR).count()
        self._reported_total = total
        return RenderReport(rendered_total=total)

    async def extract_suffix(self, from_index: int) -> Sequence[RawItemRecord]:
        cards = self._page.locator(REVIEW_CARD_SELECTOR)
        total = await cards.count()
        # Cards that rendered after the last report belong to the next round.
        if self._reported_total is not None:
            total = min(total, self._reported_total)
        log.debug("Reading review cards %d..%d", from_index, total)

        records: list[RawItemRecord] = []
        for idx in range(from_index, total):
            card = cards.nth(idx)
            try:
                await self._expand(card)
                share_url = await self._read_share_url(card) if self._capture_share_urls else ""
                html = await card.evaluate("el => el.outerHTML")
            except PlaywrightError as e:
                log.warning("Could not read review card %d: %s", idx, e)
                continue

            record = parse_review_card(html, share_url=share_url)
            if record is None:
                log.debug("Card %d is not a review, skipping", idx)
                continue
            records.append(record)
        return records

    async def _expand(self, card: Locator) -> None:
        more = card.locator(EXPAND_BUTTON_SELECTOR)
        if await more.count() and await more.first.is_visible():
            await more.first.click()
            await self._page.wait_for_timeout(self._expand_wait_ms)

    async def _read_share_url(self, card: Locator) -> str:
        """Open the card's share dialog, copy the link and close it again."""
        try:
            actions = card.locator(ACTIONS_BUTTON_SELECTOR)
            if await actions.count() == 0:
                return ""
            await actions.first.click()
            await self._page.wait_for_timeout(self._share_wait_ms)

            await self._page.locator(SHARE_MENU_ITEM_SELECTOR).first.click()
            await self._page.wait_for_timeout(self._share_wait_ms)

            share_url = await self._page.locator(SHARE_INPUT_SELECTOR).first.input_value()
            await self._page.keyboard.press("Escape")
            return share_url
        except PlaywrightError as e:
            log.debug("Share link unavailable: %s", e)
            return ""
