"""Hugging Face monthly papers source"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from urllib.parse import urljoin
import asyncio
import re
import httpx
from bs4 import BeautifulSoup
from app.crawlers.base import BaseSource, RepositoryCandidate
from app.config.settings import settings
from app.services.identifiers import parse_repository_identifier
from app.services.pipeline_exceptions import InvalidIdentifier

HUGGINGFACE_BASE_URL = "https://huggingface.co"


@dataclass
class PaperListing:
    """One article card on the monthly listing page"""
    url: str
    title: str
    authors: List[str] = field(default_factory=list)


@dataclass
class PaperDetail:
    """Links and abstract scraped from a paper page"""
    arxiv_url: Optional[str] = None
    abstract: Optional[str] = None
    github_identifier: Optional[str] = None


class HuggingFacePapersSource(BaseSource):
    """Discovers repositories linked from Hugging Face paper pages"""

    name = "papers"

    def __init__(
        self,
        month: Optional[str] = None,
        max_papers: int = 30,
        detail_delay: Optional[float] = None,
        transport=None,
    ):
        super().__init__(transport=transport)
        self.month = month or datetime.utcnow().strftime("%Y-%m")
        self.max_papers = max_papers
        self.detail_delay = settings.PAPER_DETAIL_DELAY_SECONDS if detail_delay is None else detail_delay

    @property
    def listing_url(self) -> str:
        return f"{settings.HUGGINGFACE_PAPERS_URL.rstrip('/')}/{self.month}"

    async def fetch_candidates(self) -> List[RepositoryCandidate]:
        candidates = []
        async with self.client() as client:
            self.logger.info(f"Fetching {self.listing_url}")
            response = await client.get(self.listing_url)
            response.raise_for_status()
            listings = self.parse_listing(response.text)[: self.max_papers]

            for index, listing in enumerate(listings):
                if index > 0 and self.detail_delay:
                    await asyncio.sleep(self.detail_delay)
                try:
                    detail_response = await client.get(listing.url)
                    detail_response.raise_for_status()
                except httpx.HTTPError as e:
                    self.logger.warning(f"Failed to fetch paper detail {listing.url}: {e}")
                    continue

                detail = self.parse_detail(detail_response.text)
                if not detail.github_identifier:
                    continue

                candidates.append(
                    RepositoryCandidate(
                        identifier=detail.github_identifier,
                        display_name=detail.github_identifier.split("/", 1)[1],
                        description=listing.title,
                        authors=listing.authors,
                        source=self.name,
                        arxiv_url=detail.arxiv_url,
                        paper_abstract=detail.abstract,
                    )
                )

        return candidates

    def parse_listing(self, html: str) -> List[PaperListing]:
        soup = BeautifulSoup(html, "lxml")
        listings = []
        seen = set()

        for article in soup.select("main section article"):
            link = article.select_one('a[href*="/papers/"]')
            href = link.get("href", "") if link else ""
            if not href:
                continue

            url = urljoin(HUGGINGFACE_BASE_URL, href)
            if url in seen:
                continue
            seen.add(url)

            title_element = article.select_one("h3 a")
            title = title_element.get_text(strip=True) if title_element else ""
            authors = [
                item.get("title", "").strip()
                for item in article.select("ul li[title]")
                if item.get("title", "").strip()
            ]
            listings.append(PaperListing(url=url, title=title or href.rsplit("/", 1)[-1], authors=authors))

        self.logger.info(f"Found {len(listings)} papers for {self.month}")
        return listings

    def parse_detail(self, html: str) -> PaperDetail:
        soup = BeautifulSoup(html, "lxml")
        detail = PaperDetail()

        abstract_heading = next(
            (h2 for h2 in soup.find_all("h2") if "Abstract" in h2.get_text()),
            None,
        )
        if abstract_heading is not None and abstract_heading.parent is not None:
            abstract_element = abstract_heading.parent.select_one(".text-gray-600")
            if abstract_element:
                detail.abstract = re.sub(r"\s+", " ", abstract_element.get_text()).strip() or None

        for link in soup.find_all("a", href=True):
            href = link["href"]
            text = link.get_text().lower()
            if "arxiv.org/abs/" in href and detail.arxiv_url is None:
                detail.arxiv_url = href
            elif "github.com" in href and "github" in text and detail.github_identifier is None:
                try:
                    detail.github_identifier = parse_repository_identifier(href).identifier
                except InvalidIdentifier:
                    self.logger.debug(f"Ignoring non-repository GitHub link: {href}")

        return detail
