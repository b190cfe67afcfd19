"""Typed response contracts for upstream HTTP collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FetchState(str, Enum):
    """Normalized outcome of one upstream request."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    state: FetchState
    data: Optional[T] = None
    etag: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_empty(self) -> bool:
        return self.state == FetchState.EMPTY

    @property
    def is_failed(self) -> bool:
        return self.state == FetchState.FAILED

    @property
    def is_not_found(self) -> bool:
        return self.state == FetchState.FAILED and self.status_code == 404

    @property
    def is_rate_limited(self) -> bool:
        return self.state == FetchState.FAILED and self.status_code == 429


RepoContract = FetchResult[dict[str, Any]]
ReadmeContract = FetchResult[str]
LanguagesContract = FetchResult[list[str]]
