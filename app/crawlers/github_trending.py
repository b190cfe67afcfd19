"""GitHub trending source using BeautifulSoup to scrape the trending page"""

from typing import List, Optional
from bs4 import BeautifulSoup
from app.crawlers.base import BaseSource, RepositoryCandidate
from app.config.settings import settings
from app.services.identifiers import validate_repository_path


class GitHubTrendingSource(BaseSource):
    """Discovers repositories listed on github.com/trending"""

    name = "github"

    def __init__(self, since: Optional[str] = None, transport=None):
        super().__init__(transport=transport)
        self.since = since

    async def fetch_candidates(self) -> List[RepositoryCandidate]:
        params = {"since": self.since} if self.since else None
        async with self.client() as client:
            self.logger.info(f"Fetching {settings.GITHUB_TRENDING_URL}")
            response = await client.get(
                settings.GITHUB_TRENDING_URL,
                params=params,
                headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
            )
            response.raise_for_status()
        return self.parse(response.text)

    def parse(self, html: str) -> List[RepositoryCandidate]:
        """
        Parse trending markup into candidates

        Args:
            html: trending page HTML

        Returns:
            Candidates in page order; malformed rows are skipped
        """
        soup = BeautifulSoup(html, "lxml")
        candidates = []

        for link in soup.select("h2.h3.lh-condensed a[href]"):
            path = link.get("href", "").strip()
            if not validate_repository_path(path):
                self.logger.debug(f"Skipping invalid trending path: {path}")
                continue

            identifier = path.replace("github.com/", "").strip("/")
            row = link.find_parent("article")
            description = None
            stars = None
            if row is not None:
                desc_element = row.find("p")
                if desc_element:
                    description = desc_element.get_text(strip=True) or None
                star_link = row.find("a", href=lambda h: h and h.endswith("/stargazers"))
                if star_link:
                    stars = self.parse_count(star_link.get_text(strip=True))

            candidates.append(
                RepositoryCandidate(
                    identifier=identifier,
                    display_name=identifier.split("/", 1)[1],
                    description=description,
                    star_count=stars,
                    source=self.name,
                )
            )

        self.logger.info(f"Found {len(candidates)} trending repositories")
        return candidates
