"""Repository identifier parsing and validation."""

from __future__ import annotations

import re
from dataclasses import dataclass

from app.services.pipeline_exceptions import InvalidIdentifier

_URL_PREFIX = re.compile(r"^(?:https?://)?(?:www\.)?github\.com/", re.IGNORECASE)
_SCHEME_PREFIX = re.compile(r"^\s*https?:", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    owner: str
    repo: str

    @property
    def identifier(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"


def parse_repository_identifier(raw: str) -> RepositoryRef:
    """Parse `owner/repo`, a GitHub URL, or a URL with trailing slash/`.git`.

    Raises InvalidIdentifier unless exactly two non-empty path segments remain.
    """

    if not isinstance(raw, str):
        raise InvalidIdentifier(str(raw))

    text = raw.strip()
    text = _URL_PREFIX.sub("", text)
    text = text.strip("/")
    if text.lower().endswith(".git"):
        text = text[:-4]
    text = text.rstrip("/")

    parts = text.split("/")
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise InvalidIdentifier(raw)

    owner, repo = (part.strip() for part in parts)
    return RepositoryRef(owner=owner, repo=repo)


def validate_repository_path(path: str) -> bool:
    """Check a scraped `/owner/repo` href before it becomes a candidate."""

    if not path:
        return False
    if "://" in path or _SCHEME_PREFIX.match(path):
        return False

    cleaned = path.replace("github.com/", "").lstrip("/")
    parts = cleaned.split("/")
    return len(parts) == 2 and all(part.strip() for part in parts)
