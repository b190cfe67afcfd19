"""README preprocessing shared by prompt construction and the empty-signal check."""

import re
from typing import Optional

from app.config.settings import settings

CODE_BLOCK_PLACEHOLDER = "[Code block removed]"
TRUNCATION_MARKER = "\n\n[Content truncated for length]"
_SENTENCE_ENDINGS = (". ", "! ", "? ")

# Order matters: code blocks go before inline markup so their contents are never parsed
_CLEANING_STEPS = (
    (re.compile(r"<!--.*?-->", re.DOTALL), ""),
    (re.compile(r"```.*?```", re.DOTALL), CODE_BLOCK_PLACEHOLDER),
    (re.compile(r"<[^>]+>"), ""),
    (re.compile(r"!\[[^\]]*\]\([^)]*\)"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]*\)"), r"\1"),
    (re.compile(r"^\s*[-*_]{3,}\s*$", re.MULTILINE), ""),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])"), r"\1"),
    (re.compile(r"\b_(.+?)_\b"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),
    (re.compile(r"\n{3,}"), "\n\n"),
    (re.compile(r"[ \t]+"), " "),
)


def clean_readme(readme: Optional[str], *, max_chars: Optional[int] = None) -> str:
    """Strip Markdown/HTML artifacts and truncate to the prompt budget."""

    if not readme:
        return ""

    text = readme.replace("\r\n", "\n")
    for pattern, replacement in _CLEANING_STEPS:
        text = pattern.sub(replacement, text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text).strip()

    return truncate_text(text, settings.README_MAX_CHARS if max_chars is None else max_chars)


def truncate_text(text: str, limit: int) -> str:
    """Cut at `limit`, backing up to a sentence end within the last 20%."""

    if len(text) <= limit:
        return text

    truncated = text[:limit]
    boundary = max(truncated.rfind(ending) for ending in _SENTENCE_ENDINGS)
    if boundary > limit * 0.8:
        truncated = truncated[: boundary + 1]
    return truncated + TRUNCATION_MARKER


def has_enough_signal(cleaned: str, *, min_chars: Optional[int] = None) -> bool:
    minimum = settings.README_MIN_CHARS if min_chars is None else min_chars
    return len(cleaned) >= minimum
