"""Publish decision applied after enrichment."""

from typing import Any, Optional, Sequence


def should_publish(
    *,
    images: Optional[Sequence[Any]],
    summary: Optional[str],
    content: Optional[str],
    stars: Optional[int],
    languages: Optional[Sequence[str]],
) -> bool:
    """Images alone suffice; otherwise AI text plus known stars and languages."""

    if images:
        return True
    has_ai_content = bool(summary and summary.strip()) and bool(content and content.strip())
    has_good_metadata = stars is not None and bool(languages)
    return has_ai_content and has_good_metadata
