"""Resilient async GitHub REST client for repository ingestion."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config.settings import settings
from app.crawlers.contracts import FetchResult, FetchState, LanguagesContract, ReadmeContract, RepoContract
from app.services.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


class _RateLimitRetryableError(Exception):
    """Retryable rate-limit signal for tenacity."""


class GitHubClient:
    """GitHub API client returning typed fetch contracts instead of raising."""

    BASE_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_buffer_seconds: Optional[int] = None,
        base_url: Optional[str] = None,
        transport: Optional[Any] = None,
    ) -> None:
        self._token = token or settings.GITHUB_TOKEN
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._max_retries = max_retries or settings.GITHUB_MAX_RETRIES
        self._backoff_base_seconds = backoff_base_seconds or settings.GITHUB_BACKOFF_BASE_SECONDS
        self._backoff_max_seconds = backoff_max_seconds or settings.GITHUB_BACKOFF_MAX_SECONDS
        self._rate_limit_buffer_seconds = rate_limit_buffer_seconds or settings.GITHUB_RATE_LIMIT_BUFFER_SECONDS
        self._base_url = base_url or self.BASE_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GitHubClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_repo(self, owner: str, repo: str) -> RepoContract:
        response = await self._request(f"/repos/{owner}/{repo}")
        if response.state != FetchState.OK:
            return response
        if not isinstance(response.data, dict) or not response.data:
            return FetchResult(state=FetchState.EMPTY, data={}, status_code=response.status_code)
        return response

    async def get_readme(self, owner: str, repo: str) -> ReadmeContract:
        """Fetch the default-branch README and decode it to text."""

        response = await self._request(f"/repos/{owner}/{repo}/readme")
        if response.state != FetchState.OK:
            return FetchResult(state=response.state, status_code=response.status_code, error=response.error)

        payload = response.data if isinstance(response.data, dict) else {}
        encoded = payload.get("content") if isinstance(payload.get("content"), str) else ""
        encoding = payload.get("encoding") if isinstance(payload.get("encoding"), str) else ""

        if not encoded:
            return FetchResult(state=FetchState.EMPTY, data="", status_code=response.status_code)

        if encoding == "base64":
            try:
                decoded = base64.b64decode(encoded).decode("utf-8", errors="replace")
            except (ValueError, TypeError) as exc:
                return FetchResult(
                    state=FetchState.FAILED,
                    error=f"Failed to decode base64 README: {exc}",
                    status_code=response.status_code,
                )
        else:
            decoded = encoded

        if not decoded.strip():
            return FetchResult(state=FetchState.EMPTY, data=decoded, status_code=response.status_code)

        return FetchResult(state=FetchState.OK, data=decoded, status_code=response.status_code)

    async def get_languages(self, owner: str, repo: str) -> LanguagesContract:
        """Return language names ordered by byte count, largest first."""

        response = await self._request(f"/repos/{owner}/{repo}/languages")
        if response.state != FetchState.OK:
            return FetchResult(state=response.state, status_code=response.status_code, error=response.error)

        payload = response.data if isinstance(response.data, dict) else {}
        byte_counts = {
            str(name): int(count)
            for name, count in payload.items()
            if isinstance(count, (int, float))
        }
        if not byte_counts:
            return FetchResult(state=FetchState.EMPTY, data=[], status_code=response.status_code)

        ordered = sorted(byte_counts, key=lambda name: byte_counts[name], reverse=True)
        return FetchResult(state=FetchState.OK, data=ordered, status_code=response.status_code)

    async def _request(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
    ) -> FetchResult[Any]:
        client = await self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type(_RateLimitRetryableError),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params)

                    if self._is_rate_limited(response):
                        wait_seconds = self._compute_rate_limit_wait(response.headers)
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                            ),
                        )
                        if wait_seconds > 0:
                            await asyncio.sleep(min(wait_seconds, self._backoff_max_seconds))
                        raise _RateLimitRetryableError(
                            f"GitHub rate limit encountered ({response.status_code})"
                        )

                    if response.status_code == 404:
                        return FetchResult(
                            state=FetchState.FAILED,
                            error=f"Not found: {path}",
                            status_code=404,
                        )

                    response.raise_for_status()
                    return FetchResult(
                        state=FetchState.OK,
                        data=response.json(),
                        status_code=response.status_code,
                    )
        except _RateLimitRetryableError as exc:
            logger.warning(
                "GitHub request failed after rate-limit retries",
                extra=sanitize_log_extra(path=path, error=str(exc), status_code=429),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=429)
        except (httpx.HTTPError, ValueError) as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, error=str(exc), status_code=status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=status_code)

        return FetchResult(state=FetchState.FAILED, error="Unknown GitHub request failure")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        # 403 doubles as "forbidden"; only the exhausted-quota variant is retryable
        if response.status_code == 403:
            return (
                response.headers.get("x-ratelimit-remaining") == "0"
                or response.headers.get("retry-after") is not None
            )
        return False

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                wait_seconds = int(reset_raw) - int(time.time()) + self._rate_limit_buffer_seconds
                return float(max(wait_seconds, 0))
            except ValueError:
                pass

        return self._backoff_base_seconds
