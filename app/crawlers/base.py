"""Base discovery source with common functionality"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from datetime import datetime
import logging
import httpx
from app.config.settings import settings

logger = logging.getLogger(__name__)


class RepositoryCandidate:
    """
    Normalized discovery result before insertion

    This is the intermediate format before converting to a Repository row
    """
    def __init__(
        self,
        identifier: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        star_count: Optional[int] = None,
        authors: Optional[List[str]] = None,
        source: Optional[str] = None,
        arxiv_url: Optional[str] = None,
        paper_abstract: Optional[str] = None,
    ):
        self.identifier = identifier
        self.display_name = display_name or identifier
        self.description = description
        self.star_count = star_count
        self.authors = authors or []
        self.source = source
        self.arxiv_url = arxiv_url
        self.paper_abstract = paper_abstract
        self.exists_in_store = False

    @property
    def is_paper(self) -> bool:
        return self.arxiv_url is not None or bool(self.authors)

    def to_record_values(self) -> Dict[str, Any]:
        """Discovery-time columns only; every status flag starts false

        The key set is identical for every candidate so one multi-row INSERT
        can carry papers and plain repositories together.
        """
        return {
            "identifier": self.identifier,
            "display_name": self.display_name,
            "source": self.source,
            "description": self.description,
            "images": [],
            "ingested": False,
            "enriched": False,
            "publish": False,
            "arxiv_url": self.arxiv_url,
            "paper_authors": self.authors or None,
            "paper_abstract": self.paper_abstract,
            "paper_scraped_at": datetime.utcnow() if self.is_paper else None,
        }

    def __repr__(self):
        return f"<RepositoryCandidate {self.source}: {self.identifier}>"


class BaseSource(ABC):
    """
    Base discovery source

    All source adapters inherit from this class
    """

    name = "base"

    def __init__(self, transport: Optional[Any] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.user_agent = settings.USER_AGENT
        self.timeout = settings.CRAWL_TIMEOUT_SECONDS
        self._transport = transport

    @abstractmethod
    async def fetch_candidates(self) -> List[RepositoryCandidate]:
        """
        Fetch the upstream page/feed and parse it into candidates

        Returns:
            List of RepositoryCandidate objects
        """
        pass

    async def discover(self, deduplicator: Any) -> List[RepositoryCandidate]:
        """
        Fetch candidates and annotate each with `exists_in_store`

        Args:
            deduplicator: RepositoryDeduplicator bound to the store

        Returns:
            Unique candidates, flagged against the store
        """
        self.log_start()
        candidates = await self.fetch_candidates()
        annotated = deduplicator.annotate(candidates)
        self.log_end(len(annotated))
        return annotated

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={
                "User-Agent": self.user_agent,
                "Accept-Language": "en-US,en;q=0.5",
            },
            transport=self._transport,
        )

    def log_start(self):
        """Log discovery start"""
        self.logger.info(f"Starting {self.__class__.__name__}")

    def log_end(self, count: int):
        """Log discovery end with count"""
        self.logger.info(f"Finished {self.__class__.__name__}: {count} candidates")

    @staticmethod
    def parse_count(text: str) -> Optional[int]:
        """Parse counts like '1,234' or '1.2k' to integer"""
        cleaned = (text or "").replace(",", "").strip().lower()
        if not cleaned:
            return None
        try:
            if cleaned.endswith("k"):
                return int(float(cleaned[:-1]) * 1000)
            return int(float(cleaned))
        except ValueError:
            return None
