"""OSS Insight trending repositories source (JSON API)"""

from typing import Any, Dict, List, Optional
from app.crawlers.base import BaseSource, RepositoryCandidate
from app.config.settings import settings
from app.services.identifiers import validate_repository_path


class OssInsightSource(BaseSource):
    """Discovers repositories from the OSS Insight community ranking feed"""

    name = "ossinsight"

    def __init__(self, period: Optional[str] = None, language: Optional[str] = None, transport=None):
        super().__init__(transport=transport)
        self.period = period or settings.OSSINSIGHT_PERIOD
        self.language = language

    async def fetch_candidates(self) -> List[RepositoryCandidate]:
        params = {"period": self.period}
        if self.language:
            params["language"] = self.language

        async with self.client() as client:
            self.logger.info(f"Fetching {settings.OSSINSIGHT_TRENDS_URL} ({self.period})")
            response = await client.get(
                settings.OSSINSIGHT_TRENDS_URL,
                params=params,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()
        return self.parse(payload)

    def parse(self, payload: Dict[str, Any]) -> List[RepositoryCandidate]:
        """Keep rows above the star threshold, most starred first"""
        data = payload.get("data") if isinstance(payload, dict) else None
        rows = data.get("rows") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            self.logger.warning("OSS Insight payload has no data.rows")
            return []

        eligible = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            name = str(row.get("repo_name") or "").strip()
            stars = self._to_int(row.get("stars"))
            if not validate_repository_path(name) or stars is None:
                continue
            if stars <= settings.OSSINSIGHT_MIN_STARS:
                continue
            eligible.append((name, stars, row))

        eligible.sort(key=lambda item: item[1], reverse=True)
        return [
            RepositoryCandidate(
                identifier=name,
                display_name=name.split("/", 1)[1],
                description=(row.get("description") or None),
                star_count=stars,
                source=self.name,
            )
            for name, stars, row in eligible
        ]

    async def discover(self, deduplicator: Any) -> List[RepositoryCandidate]:
        """Annotated candidates, capped to the first N not already stored"""
        annotated = await super().discover(deduplicator)
        fresh = [candidate for candidate in annotated if not candidate.exists_in_store]
        keep = {id(candidate) for candidate in fresh[: settings.OSSINSIGHT_MAX_RESULTS]}
        return [candidate for candidate in annotated if candidate.exists_in_store or id(candidate) in keep]

    @staticmethod
    def _to_int(value: Any) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
