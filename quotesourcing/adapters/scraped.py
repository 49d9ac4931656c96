"""Browser-driven adapter for vendor sites without an API."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field

from playwright.async_api import Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeout

from quotesourcing.adapters.base import SourceAdapter
from quotesourcing.config import SiteCredentials
from quotesourcing.errors import AdapterError, AdapterFailureReason
from quotesourcing.extractors import (
    FieldExtractor,
    RecordExtractor,
    RegexTextMatcher,
    css,
    parse_days,
    parse_hours,
    parse_price,
)
from quotesourcing.models import (
    MAX_HEURISTIC_CONFIDENCE,
    Availability,
    ItemKind,
    ItemRequest,
    QualityTier,
    Quote,
    SelectionContext,
    SourceKind,
    VehicleDescriptor,
)

logger = logging.getLogger(__name__)

PageFactory = Callable[[], AbstractAsyncContextManager[Page]]


@asynccontextmanager
async def browser_session(headless: bool = True) -> AsyncIterator[Page]:
    """Launch a browser for one attempt and always close it."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=["--no-sandbox"])
        try:
            page = await browser.new_page()
            yield page
        finally:
            await browser.close()


@dataclass
class SiteProfile:
    """Declarative description of one vendor site's interaction sequence."""

    name: str
    vendor_id: str
    login_url: str
    item_kind: ItemKind
    username_selectors: list[str]
    password_selectors: list[str]
    login_button_selectors: list[str]
    login_error_selectors: list[str]
    year_selectors: list[str]
    make_selectors: list[str]
    model_selectors: list[str]
    vehicle_submit_selectors: list[str]
    search_selectors: list[str]
    result_selectors: list[str]
    record: RecordExtractor = field(default_factory=RecordExtractor)


NEXPART_PARTS_PROFILE = SiteProfile(
    name="nexpart-scraper",
    vendor_id="nexpart",
    login_url="https://www.nexpart.com/login-nexpart.html",
    item_kind=ItemKind.PART,
    username_selectors=['input[name="username"]', 'input[name="user"]', "#username", "#user", 'input[type="text"]'],
    password_selectors=['input[name="password"]', 'input[name="pass"]', "#password", "#pass", 'input[type="password"]'],
    login_button_selectors=[
        'button[type="submit"]',
        'input[type="submit"]',
        "#login",
        ".login-button",
        "button.btn-login",
    ],
    login_error_selectors=[".login-error", ".error-message", "#loginError"],
    year_selectors=['select[name="year"]', 'input[name="year"]', "#year", "select.year", "input.year"],
    make_selectors=['select[name="make"]', 'input[name="make"]', "#make", "select.make", "input.make"],
    model_selectors=['select[name="model"]', 'input[name="model"]', "#model", "select.model", "input.model"],
    vehicle_submit_selectors=['button[type="submit"]', 'input[type="submit"]', "#search", ".btn-search"],
    search_selectors=[
        'input[name="search"]',
        'input[name="part"]',
        "#search",
        "#part-search",
        'input[type="search"]',
        "input.search-box",
    ],
    result_selectors=[".part-item", ".product-item", ".result-item", "tr.part-row", ".part-listing"],
    record=RecordExtractor(
        [
            FieldExtractor("part_number", css(".part-number", ".partnumber", ".part-num", "td.part-num")),
            FieldExtractor("description", css(".description", ".part-desc", ".part-name", "td.description")),
            FieldExtractor(
                "price",
                css(".price", ".part-price", ".cost", "td.price", "span.price") + [RegexTextMatcher(r"(\$\s*[\d,]+\.\d{2})")],
                required=True,
            ),
            FieldExtractor("availability", css(".availability", ".stock", ".in-stock", "td.availability")),
            FieldExtractor("delivery", css(".delivery", ".eta", "td.delivery")),
            FieldExtractor("brand", css(".brand", ".manufacturer", ".line-code", "td.brand")),
        ]
    ),
)

AUTOLABOR_PROFILE = SiteProfile(
    name="autolabor-scraper",
    vendor_id="autolaborexperts",
    login_url="https://www.autolaborexperts.com/login",
    item_kind=ItemKind.LABOR_OPERATION,
    username_selectors=['input[name="username"]', 'input[name="email"]', "#username", "#email", 'input[type="text"]'],
    password_selectors=['input[name="password"]', "#password", 'input[type="password"]'],
    login_button_selectors=['button[type="submit"]', 'input[type="submit"]', "#login", ".login-btn"],
    login_error_selectors=[".alert-danger", ".login-error", ".error"],
    year_selectors=['select[name="year"]', "#year", 'input[name="year"]'],
    make_selectors=['select[name="make"]', "#make", 'input[name="make"]'],
    model_selectors=['select[name="model"]', "#model", 'input[name="model"]'],
    vehicle_submit_selectors=['button[type="submit"]', "#vehicle-submit", ".btn-continue"],
    search_selectors=['input[name="repair"]', 'input[name="search"]', "#repair-search", 'input[type="search"]'],
    result_selectors=[".labor-result", ".operation-row", ".labor-item", "tr.labor-row"],
    record=RecordExtractor(
        [
            FieldExtractor("operation", css(".operation-name", ".labor-name", "td.operation")),
            FieldExtractor(
                "hours",
                css(".labor-time", ".hours", ".time", "td.hours") + [RegexTextMatcher(r"(\d+(?:\.\d+)?)\s*(?:hrs?|hours)")],
                required=True,
            ),
            FieldExtractor("difficulty", css(".difficulty", "td.difficulty")),
        ]
    ),
)


class ScrapedAdapter(SourceAdapter):
    """Drives a vendor site: open, authenticate, select vehicle, search, extract.

    One browser session is opened and closed per attempt.
    """

    SOURCE_KIND = SourceKind.SCRAPED
    DEFAULT_CONFIDENCE = 0.85

    def __init__(
        self,
        profile: SiteProfile,
        credentials: SiteCredentials,
        page_factory: PageFactory | None = None,
        step_timeout_seconds: float = 30.0,
        timeout_seconds: float | None = 180.0,
        headless: bool = True,
        confidence: float = DEFAULT_CONFIDENCE,
    ):
        """Initialize scraped adapter.

        Args:
            profile: Site interaction profile.
            credentials: Site login.
            page_factory: Async context manager factory yielding a Page.
                Defaults to a fresh headless Chromium per attempt.
            step_timeout_seconds: Ceiling for each navigation step.
            timeout_seconds: Ceiling for the whole attempt.
            headless: Whether the default browser runs headless.
            confidence: Confidence assigned to scraped quotes (max 0.9).
        """
        super().__init__(timeout_seconds)
        self.profile = profile
        self.NAME = profile.name
        self.credentials = credentials
        self.step_timeout_ms = step_timeout_seconds * 1000
        self.confidence = min(confidence, MAX_HEURISTIC_CONFIDENCE)
        self._page_factory = page_factory or (lambda: browser_session(headless=headless))

    async def _fetch(
        self,
        vehicle: VehicleDescriptor,
        item: ItemRequest,
        context: SelectionContext | None,
    ) -> Quote:
        if item.kind != self.profile.item_kind:
            raise AdapterError(AdapterFailureReason.NOT_FOUND, f"{self.NAME} does not price {item.kind.value} items")
        if not self.credentials.username or not self.credentials.password:
            raise AdapterError(AdapterFailureReason.AUTHENTICATION_FAILED, "No credentials configured")

        try:
            async with self._page_factory() as page:
                page.set_default_timeout(self.step_timeout_ms)

                logger.info(f"{self.NAME}: navigating to {self.profile.login_url}")
                await page.goto(self.profile.login_url, wait_until="domcontentloaded")

                await self._login(page)
                await self._select_vehicle(page, vehicle)
                await self._search(page, item)
                record = await self._extract_first_result(page)
        except PlaywrightTimeout as e:
            raise AdapterError(AdapterFailureReason.TIMEOUT, f"Navigation step timed out: {e}") from e

        return self._to_quote(record)

    async def _first_present(self, page: Page, selectors: list[str]) -> str | None:
        """Return the first selector that resolves on the page."""
        for selector in selectors:
            try:
                if await page.query_selector(selector):
                    return selector
            except PlaywrightTimeout:
                raise
            except Exception as e:
                logger.debug(f"Selector {selector} errored: {e}")
        return None

    async def _login(self, page: Page) -> None:
        username = await self._first_present(page, self.profile.username_selectors)
        if username is None:
            raise AdapterError(AdapterFailureReason.AUTHENTICATION_FAILED, "Could not find username field")
        await page.fill(username, self.credentials.username)

        password = await self._first_present(page, self.profile.password_selectors)
        if password is None:
            raise AdapterError(AdapterFailureReason.AUTHENTICATION_FAILED, "Could not find password field")
        await page.fill(password, self.credentials.password)

        button = await self._first_present(page, self.profile.login_button_selectors)
        if button:
            await page.click(button)
        else:
            await page.keyboard.press("Enter")
        await page.wait_for_load_state("domcontentloaded")

        if await self._first_present(page, self.profile.login_error_selectors):
            raise AdapterError(AdapterFailureReason.AUTHENTICATION_FAILED, "Site rejected the login")
        logger.info(f"{self.NAME}: logged in")

    async def _select_vehicle(self, page: Page, vehicle: VehicleDescriptor) -> None:
        steps = (
            (self.profile.year_selectors, str(vehicle.year)),
            (self.profile.make_selectors, vehicle.make),
            (self.profile.model_selectors, vehicle.model),
        )
        for selectors, value in steps:
            selector = await self._first_present(page, selectors)
            if selector is None:
                # Some sites infer the vehicle from the search; not fatal
                logger.debug(f"{self.NAME}: no vehicle field for '{value}'")
                continue
            await self._set_field(page, selector, value)

        submit = await self._first_present(page, self.profile.vehicle_submit_selectors)
        if submit:
            await page.click(submit)
            await page.wait_for_load_state("domcontentloaded")
        logger.info(f"{self.NAME}: vehicle selected ({vehicle})")

    async def _set_field(self, page: Page, selector: str, value: str) -> None:
        """Choose a dropdown option or type into a text field, whichever the element is."""
        tag = await page.eval_on_selector(selector, "e => e.tagName")
        if str(tag).upper() != "SELECT":
            await page.fill(selector, value)
            return
        options = await page.eval_on_selector(selector, "e => Array.from(e.options, o => o.value)")
        if value.upper() in options:
            await page.select_option(selector, value=value.upper())
        else:
            await page.select_option(selector, label=value)

    async def _search(self, page: Page, item: ItemRequest) -> None:
        selector = await self._first_present(page, self.profile.search_selectors)
        if selector is None:
            raise AdapterError(AdapterFailureReason.FIELD_NOT_FOUND, "Could not find search box")
        await page.fill(selector, item.part_number or item.description)
        await page.keyboard.press("Enter")
        await page.wait_for_load_state("domcontentloaded")

    async def _extract_first_result(self, page: Page) -> dict[str, str | None]:
        for selector in self.profile.result_selectors:
            rows = await page.query_selector_all(selector)
            if rows:
                logger.debug(f"{self.NAME}: {len(rows)} results via {selector}")
                record = await self.profile.record.extract(rows[0])
                record["_evidence"] = await rows[0].inner_text()
                return record
        raise AdapterError(AdapterFailureReason.NOT_FOUND, "Search returned no results")

    def _to_quote(self, record: dict[str, str | None]) -> Quote:
        evidence = record.get("_evidence") or ""
        if self.profile.item_kind == ItemKind.LABOR_OPERATION:
            hours = parse_hours(record.get("hours"))
            if hours is None:
                raise AdapterError(AdapterFailureReason.FIELD_NOT_FOUND, f"Unparseable labor time: {record.get('hours')}")
            return Quote(
                source_kind=SourceKind.SCRAPED,
                vendor_id=self.profile.vendor_id,
                labor_hours=hours,
                confidence=self.confidence,
                raw_evidence=evidence,
            )

        price = parse_price(record.get("price"))
        if price is None:
            raise AdapterError(AdapterFailureReason.FIELD_NOT_FOUND, f"Unparseable price: {record.get('price')}")
        availability = Availability.from_text(record.get("availability"))
        delivery_days = parse_days(record.get("delivery"))
        if delivery_days is None and availability == Availability.IN_STOCK:
            delivery_days = 0
        return Quote(
            source_kind=SourceKind.SCRAPED,
            vendor_id=self.profile.vendor_id,
            price=price,
            availability=availability,
            delivery_days=delivery_days,
            quality=QualityTier.from_text(record.get("brand")),
            confidence=self.confidence,
            raw_evidence=evidence,
        )
