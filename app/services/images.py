"""README image extraction, normalization and size filtering."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from io import BytesIO
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from app.config.settings import settings
from app.services.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)

KIND_README_MARKDOWN = "readme-markdown"
KIND_README_HTML = "readme-html"
KIND_SCREENSHOT = "screenshot"

_MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+[\"'][^\"']*[\"'])?\s*\)")
_DECORATIVE_SUBSTRINGS = ("badge", "shield", "star-history")
_AVATAR_PATTERN = re.compile(r"githubusercontent\.com.*\?.*size", re.IGNORECASE)

ImageProbe = Callable[[str], Awaitable[Optional[tuple[int, int]]]]


@dataclass(frozen=True, slots=True)
class ImageReference:
    url: str
    kind: str


@dataclass(frozen=True, slots=True)
class RepositoryImage:
    url: str
    width: int
    height: int
    kind: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def extract_image_references(readme: str) -> list[ImageReference]:
    """Collect raw image URLs from Markdown syntax and HTML `<img>` tags."""

    if not readme:
        return []

    references = [
        ImageReference(url=match.group(1), kind=KIND_README_MARKDOWN)
        for match in _MARKDOWN_IMAGE_PATTERN.finditer(readme)
    ]

    soup = BeautifulSoup(readme, "html.parser")
    for tag in soup.find_all("img"):
        src = tag.get("src")
        if isinstance(src, str) and src.strip():
            references.append(ImageReference(url=src.strip(), kind=KIND_README_HTML))

    return references


def normalize_image_url(raw: str, repo_base_url: str, *, branch: str = "main") -> Optional[str]:
    """Resolve a README image reference to an absolute URL.

    Relative paths are rewritten against `{repo_base_url}/raw/{branch}/`;
    returns None for data URIs, anchors and unparseable values.
    """

    value = (raw or "").strip()
    if not value or value.startswith("#") or value.lower().startswith("data:"):
        return None

    if value.startswith("//"):
        value = f"https:{value}"

    try:
        parsed = urlparse(value)
    except ValueError:
        return None

    if parsed.scheme in ("http", "https"):
        return value if parsed.netloc else None
    if parsed.scheme:
        return None

    path = value
    while path.startswith("./") or path.startswith("../"):
        path = path[2:] if path.startswith("./") else path[3:]
    path = path.lstrip("/")
    if not path:
        return None

    return f"{repo_base_url.rstrip('/')}/raw/{branch}/{path}"


def is_decorative_image(url: str) -> bool:
    """Badges, shields, star charts, SVG icons and sized avatars."""

    lowered = url.lower()
    if urlparse(lowered).path.endswith(".svg"):
        return True
    if any(fragment in lowered for fragment in _DECORATIVE_SUBSTRINGS):
        return True
    return bool(_AVATAR_PATTERN.search(url))


def meets_minimum_size(
    width: int,
    height: int,
    *,
    min_width: Optional[int] = None,
    min_height: Optional[int] = None,
) -> bool:
    min_width = settings.IMAGE_MIN_WIDTH if min_width is None else min_width
    min_height = settings.IMAGE_MIN_HEIGHT if min_height is None else min_height
    return width >= min_width and height >= min_height


class HttpImageProbe:
    """Download an image and measure it with Pillow."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def __call__(self, url: str) -> Optional[tuple[int, int]]:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            logger.debug("Image fetch failed", extra=sanitize_log_extra(url=url, error=str(exc)))
            return None

        if not response.is_success:
            return None

        content_type = response.headers.get("content-type")
        if content_type and not content_type.lower().startswith("image/"):
            return None

        try:
            with Image.open(BytesIO(response.content)) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError) as exc:
            logger.debug("Image decode failed", extra=sanitize_log_extra(url=url, error=str(exc)))
            return None
        return int(width), int(height)


class ImagePipeline:
    """Turn README markup into a deduplicated list of content images."""

    def __init__(
        self,
        *,
        probe: Optional[ImageProbe] = None,
        min_width: Optional[int] = None,
        min_height: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._probe = probe
        self._min_width = min_width
        self._min_height = min_height
        self._timeout_seconds = timeout_seconds or settings.IMAGE_PROBE_TIMEOUT_SECONDS

    def candidate_urls(self, readme: str, repo_base_url: str, *, branch: str = "main") -> list[ImageReference]:
        """Normalized, non-decorative references, unique by URL in first-seen order."""

        seen: set[str] = set()
        candidates: list[ImageReference] = []
        for reference in extract_image_references(readme):
            url = normalize_image_url(reference.url, repo_base_url, branch=branch)
            if url is None or url in seen or is_decorative_image(url):
                continue
            seen.add(url)
            candidates.append(ImageReference(url=url, kind=reference.kind))
        return candidates

    async def extract_images(
        self,
        readme: Optional[str],
        repo_base_url: str,
        *,
        branch: str = "main",
    ) -> list[RepositoryImage]:
        if not readme:
            return []

        candidates = self.candidate_urls(readme, repo_base_url, branch=branch)
        if not candidates:
            return []

        if self._probe is not None:
            return await self._measure(candidates, self._probe)

        async with httpx.AsyncClient(
            timeout=self._timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": settings.USER_AGENT},
        ) as client:
            return await self._measure(candidates, HttpImageProbe(client))

    async def _measure(self, candidates: list[ImageReference], probe: ImageProbe) -> list[RepositoryImage]:
        images: list[RepositoryImage] = []
        for candidate in candidates:
            size = await probe(candidate.url)
            if size is None:
                continue
            width, height = size
            if not meets_minimum_size(width, height, min_width=self._min_width, min_height=self._min_height):
                continue
            images.append(RepositoryImage(url=candidate.url, width=width, height=height, kind=candidate.kind))

        logger.info(
            "README images measured",
            extra=sanitize_log_extra(candidates=len(candidates), kept=len(images)),
        )
        return images
