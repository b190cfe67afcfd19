"""Explicit, immutable API-key rotation for the LLM provider."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from app.config.settings import settings
from app.services.pipeline_exceptions import PipelineConfigurationError


@dataclass(frozen=True, slots=True)
class CredentialPool:
    """Round-robin key pool.

    `next()` never mutates; callers keep the returned pool for the following
    request. Keys rotate every `rotate_every` requests and on `rotate()`.
    """

    credentials: tuple[str, ...]
    rotate_every: int = 10
    index: int = 0
    request_count: int = 0

    @classmethod
    def from_keys(cls, keys: Iterable[Optional[str]], *, rotate_every: Optional[int] = None) -> "CredentialPool":
        unique: list[str] = []
        for key in keys:
            cleaned = (key or "").strip()
            if cleaned and cleaned not in unique:
                unique.append(cleaned)
        return cls(
            credentials=tuple(unique),
            rotate_every=max(1, rotate_every or settings.LLM_ROTATE_EVERY),
        )

    @classmethod
    def from_settings(cls) -> "CredentialPool":
        extra = (settings.OPENAI_API_KEYS or "").split(",")
        return cls.from_keys([settings.OPENAI_API_KEY, *extra])

    def __len__(self) -> int:
        return len(self.credentials)

    @property
    def is_empty(self) -> bool:
        return not self.credentials

    def next(self) -> tuple[str, int, "CredentialPool"]:
        """Return (credential, request number, pool for the next request)."""

        if self.is_empty:
            raise PipelineConfigurationError("No LLM API credentials configured")

        index = self.index
        if self.request_count and self.request_count % self.rotate_every == 0:
            index = (index + 1) % len(self.credentials)

        count = self.request_count + 1
        return self.credentials[index], count, replace(self, index=index, request_count=count)

    def rotate(self) -> "CredentialPool":
        """Move to the next key immediately, e.g. after HTTP 429."""

        if self.is_empty:
            return self
        return replace(self, index=(self.index + 1) % len(self.credentials))
