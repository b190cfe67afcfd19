"""Homepage resolution for screenshot capture."""

import re
from typing import Optional
from urllib.parse import urlparse

EXCLUDED_HOSTS = ("github.com", "linkedin.com", "twitter.com", "facebook.com", "instagram.com")

_KEYWORD_PATTERN = re.compile(
    r"\b(?:live demo|live preview|view live|see live|check it out|website|demo|preview|deployed|"
    r"production|application|app|site|visit|homepage)\b",
    re.IGNORECASE,
)
_URL_PATTERN = re.compile(r"https?://[^\s\)\]<>\"']+")
_MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")
_LINK_TEXT_PATTERN = re.compile(r"website|demo|live|preview|app|site|deployed", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)"


def is_excluded_homepage(url: str) -> bool:
    """Social profiles, GitHub itself and badge images are never homepages."""

    host = (urlparse(url).hostname or "").lower()
    if not host:
        return True
    if any(host == excluded or host.endswith(f".{excluded}") for excluded in EXCLUDED_HOSTS):
        return True
    lowered = url.lower()
    return "shields.io" in lowered or "badge" in lowered


def resolve_homepage(github_homepage: Optional[str], readme: Optional[str]) -> Optional[str]:
    """Pick a homepage URL.

    Precedence: the GitHub homepage field, then the first URL on a README
    line mentioning a homepage keyword, then the first Markdown link whose
    text reads like a demo/website link.
    """

    if github_homepage and github_homepage.strip():
        candidate = github_homepage.strip()
        if not candidate.startswith(("http://", "https://")):
            candidate = f"https://{candidate}"
        if not is_excluded_homepage(candidate):
            return candidate

    if not readme:
        return None

    for line in readme.splitlines():
        if not _KEYWORD_PATTERN.search(line):
            continue
        for match in _URL_PATTERN.finditer(line):
            url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
            if not is_excluded_homepage(url):
                return url

    for match in _MARKDOWN_LINK_PATTERN.finditer(readme):
        text, url = match.group(1), match.group(2)
        if _LINK_TEXT_PATTERN.search(text) and not is_excluded_homepage(url):
            return url

    return None
