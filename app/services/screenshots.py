"""Homepage screenshot capture and upload."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

from playwright.async_api import async_playwright
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from app.config.settings import settings
from app.services.images import KIND_SCREENSHOT, RepositoryImage
from app.services.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


class ScreenshotCaptureError(Exception):
    """Screenshot provider returned no image."""


class PlaywrightScreenshotProvider:
    """Capture a fixed-viewport PNG with Chromium, locally or over Browserless CDP."""

    def __init__(
        self,
        *,
        browserless_url: Optional[str] = None,
        browserless_token: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self._browserless_url = browserless_url or settings.BROWSERLESS_URL
        self._browserless_token = browserless_token or settings.BROWSERLESS_TOKEN
        self.width = width or settings.SCREENSHOT_WIDTH
        self.height = height or settings.SCREENSHOT_HEIGHT
        self._timeout_ms = timeout_ms or settings.PLAYWRIGHT_TIMEOUT

    @property
    def endpoint(self) -> Optional[str]:
        if not self._browserless_url:
            return None
        if not self._browserless_token:
            return self._browserless_url
        separator = "&" if "?" in self._browserless_url else "?"
        return f"{self._browserless_url}{separator}{urlencode({'token': self._browserless_token})}"

    async def capture(self, url: str) -> bytes:
        async with async_playwright() as p:
            if self.endpoint:
                browser = await p.chromium.connect_over_cdp(self.endpoint, timeout=self._timeout_ms)
            else:
                browser = await p.chromium.launch(headless=settings.PLAYWRIGHT_HEADLESS)
            try:
                page = await browser.new_page(
                    viewport={"width": self.width, "height": self.height},
                    user_agent=settings.USER_AGENT,
                )
                await page.goto(url, wait_until="networkidle", timeout=self._timeout_ms)
                data = await page.screenshot(type="png", full_page=False)
            finally:
                await browser.close()

        if not data:
            raise ScreenshotCaptureError(f"Empty screenshot for {url}")
        return data


def screenshot_key(identifier: str, timestamp_ms: Optional[int] = None) -> str:
    """`images/{owner}-{repo}-{ms}.png`"""

    stamp = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    slug = identifier.replace("/", "-")
    return f"images/{slug}-{stamp}.png"


class ScreenshotService:
    """Capture with bounded retries, upload, and describe the result as an image."""

    def __init__(
        self,
        *,
        provider: Any,
        storage: Any,
        max_attempts: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._storage = storage
        self._max_attempts = max_attempts or settings.SCREENSHOT_MAX_ATTEMPTS
        self._backoff_seconds = (backoff_ms or settings.SCREENSHOT_BACKOFF_MS) / 1000
        self._sleep = sleep

    async def capture_with_retry(self, url: str) -> Optional[bytes]:
        """Up to N attempts, waiting attempt × backoff between them; None when all fail."""

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_incrementing(start=self._backoff_seconds, increment=self._backoff_seconds),
                retry=retry_if_exception_type(Exception),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    logger.info(
                        "Capturing homepage screenshot",
                        extra=sanitize_log_extra(url=url, attempt=attempt_number),
                    )
                    return await self._provider.capture(url)
        except Exception as exc:
            logger.warning(
                "Screenshot capture failed after retries",
                extra=sanitize_log_extra(url=url, attempts=self._max_attempts, error=str(exc)),
            )
        return None

    async def capture_homepage(self, homepage: str, identifier: str) -> Optional[RepositoryImage]:
        data = await self.capture_with_retry(homepage)
        if not data:
            return None

        key = screenshot_key(identifier)
        try:
            public_url = await self._storage.put(key, data, "image/png")
        except Exception as exc:
            logger.warning(
                "Screenshot upload failed",
                extra=sanitize_log_extra(repo=identifier, key=key, error=str(exc)),
            )
            return None

        return RepositoryImage(
            url=public_url,
            width=getattr(self._provider, "width", settings.SCREENSHOT_WIDTH),
            height=getattr(self._provider, "height", settings.SCREENSHOT_HEIGHT),
            kind=KIND_SCREENSHOT,
        )
