"""SQLAlchemy-backed persistence for pipeline repository records."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Text, cast, func, or_, text
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.models.repository import Repository, split_languages

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = ("created_at", "stars", "forks", "updated_at")


class SQLAlchemyRepositoryStore:
    """Single-row, single-statement commits over the `repositories` table.

    Each update commits on its own so a batch interrupted half-way leaves a
    well-defined subset of records advanced.
    """

    def __init__(self, db: Any) -> None:
        self._db = db

    def close(self) -> None:
        self._db.close()

    def ping(self) -> None:
        self._db.execute(text("SELECT 1"))

    def existing_identifiers(self, identifiers: Iterable[str]) -> set[str]:
        """Return stored identifiers matching any input, ignoring case."""

        wanted = sorted({identifier.lower() for identifier in identifiers if identifier})
        if not wanted:
            return set()
        rows = (
            self._db.query(Repository.identifier)
            .filter(func.lower(Repository.identifier).in_(wanted))
            .all()
        )
        return {row[0] for row in rows}

    def insert_new(self, rows: Sequence[dict[str, Any]]) -> int:
        """Insert discovery rows, ignoring identifiers that already exist.

        No conflict target is named so both the exact and the lower-cased
        unique index on `identifier` turn a duplicate into a no-op.
        """

        if not rows:
            return 0

        stmt = (
            pg_insert(Repository)
            .values(list(rows))
            .on_conflict_do_nothing()
            .returning(Repository.id)
        )
        try:
            inserted = len(self._db.execute(stmt).fetchall())
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
        return inserted

    def pending_ingestion(self, limit: int) -> list[Repository]:
        return list(
            self._db.query(Repository)
            .filter(Repository.ingested.is_(False))
            .order_by(Repository.created_at.asc(), Repository.id.asc())
            .limit(limit)
            .all()
        )

    def pending_enrichment(self, limit: int) -> list[Repository]:
        return list(
            self._db.query(Repository)
            .filter(Repository.ingested.is_(True), Repository.enriched.is_(False))
            .order_by(Repository.created_at.asc(), Repository.id.asc())
            .limit(limit)
            .all()
        )

    def stale_published(self, limit: int, *, older_than: datetime) -> list[Repository]:
        return list(
            self._db.query(Repository)
            .filter(Repository.publish.is_(True), Repository.updated_at < older_than)
            .order_by(Repository.updated_at.asc())
            .limit(limit)
            .all()
        )

    def update(self, record_id: Any, values: dict[str, Any], *, require_ingested: bool = False) -> bool:
        """Conditionally update one record by id and commit immediately."""

        query = self._db.query(Repository).filter(Repository.id == record_id)
        if require_ingested:
            query = query.filter(Repository.ingested.is_(True))
        try:
            updated = query.update(values, synchronize_session=False)
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
        if not updated:
            logger.warning("Repository update matched no rows", extra={"record_id": record_id})
        return bool(updated)

    def counts(self) -> dict[str, int]:
        def _count(*conditions: Any) -> int:
            query = self._db.query(func.count(Repository.id))
            if conditions:
                query = query.filter(*conditions)
            return int(query.scalar() or 0)

        return {
            "total": _count(),
            "ingested": _count(Repository.ingested.is_(True)),
            "enriched": _count(Repository.enriched.is_(True)),
            "published": _count(Repository.publish.is_(True)),
            "needIngestion": _count(Repository.ingested.is_(False)),
            "needEnrichment": _count(Repository.ingested.is_(True), Repository.enriched.is_(False)),
        }

    def list_published(
        self,
        *,
        page: int = 1,
        limit: int = 12,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        search: Optional[str] = None,
        language: Optional[str] = None,
        experience: Optional[str] = None,
        license: Optional[str] = None,
    ) -> list[Repository]:
        """One page of published records, filtered and sorted."""

        query = self._db.query(Repository).filter(Repository.publish.is_(True))
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Repository.summary.ilike(pattern),
                    Repository.identifier.ilike(pattern),
                    Repository.languages.ilike(pattern),
                    cast(Repository.tags, Text).ilike(pattern),
                )
            )
        if language:
            query = query.filter(Repository.languages.ilike(f"%{language}%"))
        if experience:
            query = query.filter(Repository.experience.ilike(f"%{experience}%"))
        if license:
            query = query.filter(Repository.license.ilike(f"%{license}%"))

        column = getattr(Repository, sort_by if sort_by in SORTABLE_COLUMNS else "created_at")
        ordering = column.asc() if sort_order == "asc" else column.desc()
        return list(
            query.order_by(ordering, Repository.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
            .all()
        )

    def published_stats(self) -> dict[str, int]:
        published = Repository.publish.is_(True)
        total = self._db.query(func.count(Repository.id)).filter(published).scalar()
        stars = self._db.query(func.coalesce(func.sum(Repository.stars), 0)).filter(published).scalar()
        rows = self._db.query(Repository.languages).filter(published, Repository.languages.isnot(None)).all()
        languages = {language for row in rows for language in split_languages(row[0])}
        return {
            "totalRepos": int(total or 0),
            "totalStars": int(stars or 0),
            "totalLanguages": len(languages),
        }
