"""GitHub metadata, README and language retrieval for ingestion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.crawlers.contracts import FetchResult
from app.models.repository import join_languages
from app.services.identifiers import RepositoryRef, parse_repository_identifier
from app.services.log_sanitizer import sanitize_log_extra
from app.services.pipeline_exceptions import RateLimitError, RepositoryNotFound, TransientPipelineError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RepositoryMetadata:
    """Everything ingestion learns about one repository upstream."""

    ref: RepositoryRef
    github: dict[str, Any]
    readme: Optional[str]
    languages: Optional[list[str]]

    @property
    def default_branch(self) -> str:
        return str(self.github.get("default_branch") or "main")

    @property
    def homepage(self) -> Optional[str]:
        value = self.github.get("homepage")
        return value.strip() if isinstance(value, str) and value.strip() else None

    @property
    def topics(self) -> list[str]:
        topics = self.github.get("topics")
        return [str(topic) for topic in topics] if isinstance(topics, list) else []

    @property
    def description(self) -> Optional[str]:
        return self.github.get("description") or None

    @property
    def license(self) -> Optional[str]:
        license_payload = self.github.get("license")
        if not isinstance(license_payload, dict):
            return None
        spdx = license_payload.get("spdx_id")
        if spdx and spdx != "NOASSERTION":
            return str(spdx)
        return license_payload.get("name") or None

    def counters(self) -> dict[str, Any]:
        return counters_from_payload(self.github)

    def to_record_values(self) -> dict[str, Any]:
        values = self.counters()
        values.update(
            {
                "license": self.license,
                "homepage": self.homepage,
                "default_branch": self.default_branch,
                "tags": self.topics,
                "readme": self.readme,
                "languages": join_languages(self.languages),
            }
        )
        if self.description:
            values["description"] = self.description
        return values


def counters_from_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Volatile counters refreshed on the staleness cadence."""

    watchers = payload.get("subscribers_count")
    if watchers is None:
        watchers = payload.get("watchers_count")
    return {
        "stars": _optional_int(payload.get("stargazers_count")),
        "forks": _optional_int(payload.get("forks_count")),
        "watchers": _optional_int(watchers),
        "open_issues": _optional_int(payload.get("open_issues_count")),
        "network_count": _optional_int(payload.get("network_count")),
        "archived": bool(payload.get("archived") or False),
        "disabled": bool(payload.get("disabled") or False),
    }


class MetadataFetcher:
    """Translate GitHub fetch contracts into metadata or pipeline errors."""

    def __init__(self, github_client: Any) -> None:
        self._github_client = github_client

    async def fetch(self, identifier: str) -> RepositoryMetadata:
        """Fetch repository attributes, README text and languages.

        Raises InvalidIdentifier or RepositoryNotFound for permanent failures,
        RateLimitError on 429 and TransientPipelineError otherwise. A missing
        README or language list is not an error and comes back as None.
        """

        ref = parse_repository_identifier(identifier)
        github = await self.fetch_repository(ref)

        readme_response = await self._github_client.get_readme(ref.owner, ref.repo)
        readme = self._optional_payload(ref, readme_response, resource="readme")

        languages_response = await self._github_client.get_languages(ref.owner, ref.repo)
        languages = self._optional_payload(ref, languages_response, resource="languages")
        if languages_response.is_empty:
            languages = []

        return RepositoryMetadata(ref=ref, github=github, readme=readme, languages=languages)

    async def fetch_repository(self, ref: RepositoryRef) -> dict[str, Any]:
        response = await self._github_client.get_repo(ref.owner, ref.repo)
        if response.is_ok and isinstance(response.data, dict):
            return response.data
        if response.is_not_found:
            raise RepositoryNotFound(ref.identifier)
        self._raise_for_failure(ref, response, resource="repository")
        raise TransientPipelineError(f"Empty repository payload for {ref.identifier}")

    async def fetch_counters(self, identifier: str) -> dict[str, Any]:
        ref = parse_repository_identifier(identifier)
        return counters_from_payload(await self.fetch_repository(ref))

    def _optional_payload(self, ref: RepositoryRef, response: FetchResult[Any], *, resource: str) -> Any:
        if response.is_ok:
            return response.data
        if response.is_empty or response.is_not_found:
            logger.info(
                "Optional GitHub resource absent",
                extra=sanitize_log_extra(repo=ref.identifier, resource=resource),
            )
            return None
        self._raise_for_failure(ref, response, resource=resource)
        return None

    @staticmethod
    def _raise_for_failure(ref: RepositoryRef, response: FetchResult[Any], *, resource: str) -> None:
        if response.is_rate_limited:
            raise RateLimitError(f"GitHub rate limit while fetching {resource} for {ref.identifier}")
        if response.is_failed:
            raise TransientPipelineError(
                f"GitHub {resource} fetch failed for {ref.identifier}: "
                f"{response.error or 'unknown error'} (status {response.status_code})"
            )


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
