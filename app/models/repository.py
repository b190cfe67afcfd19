"""Repository model tracked through the discovery/ingestion/enrichment pipeline."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.config.database import Base


class Repository(Base):
    """Repository entity mapped to `repositories` table."""

    __tablename__ = "repositories"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    identifier = Column(String(200), unique=True, nullable=False, index=True)  # owner/repo
    display_name = Column(String(200), nullable=True)
    source = Column(String(30), nullable=True)
    description = Column(Text, nullable=True)

    # AI-generated text
    summary = Column(Text, nullable=True)
    content = Column(Text, nullable=True)

    # Comma-joined, most bytes first
    languages = Column(Text, nullable=True)

    experience = Column(String(20), nullable=True)
    usability = Column(String(20), nullable=True)
    deployment = Column(String(20), nullable=True)

    stars = Column(Integer, nullable=True)
    forks = Column(Integer, nullable=True)
    watchers = Column(Integer, nullable=True)
    open_issues = Column(Integer, nullable=True)
    network_count = Column(Integer, nullable=True)

    license = Column(String(100), nullable=True)
    homepage = Column(String(500), nullable=True)
    default_branch = Column(String(100), nullable=True)
    tags = Column(JSONB, nullable=True)
    readme = Column(Text, nullable=True)
    images = Column(JSONB, nullable=False, default=list)

    archived = Column(Boolean, nullable=False, default=False)
    disabled = Column(Boolean, nullable=False, default=False)

    # Populated only for repositories discovered through the paper feed
    arxiv_url = Column(String(500), nullable=True)
    paper_authors = Column(JSONB, nullable=True)
    paper_abstract = Column(Text, nullable=True)
    paper_scraped_at = Column(DateTime, nullable=True)

    ingested = Column(Boolean, nullable=False, default=False, index=True)
    enriched = Column(Boolean, nullable=False, default=False, index=True)
    publish = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_repositories_pending", "ingested", "enriched"),
        Index("idx_repositories_publish_updated", "publish", "updated_at"),
        # GitHub owner/repo names are case-insensitive
        Index("uq_repositories_identifier_lower", func.lower(identifier), unique=True),
    )

    @property
    def language_list(self) -> list[str]:
        return split_languages(self.languages)

    def to_public_dict(self) -> dict:
        """Published listing shape; the raw README stays server-side"""
        return {
            "id": self.id,
            "identifier": self.identifier,
            "displayName": self.display_name,
            "source": self.source,
            "description": self.description,
            "summary": self.summary,
            "content": self.content,
            "languages": self.language_list,
            "experience": self.experience,
            "usability": self.usability,
            "deployment": self.deployment,
            "stars": self.stars,
            "forks": self.forks,
            "watchers": self.watchers,
            "openIssues": self.open_issues,
            "license": self.license,
            "homepage": self.homepage,
            "tags": self.tags or [],
            "images": self.images or [],
            "arxivUrl": self.arxiv_url,
            "paperAuthors": self.paper_authors,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Repository {self.identifier}>"


def join_languages(languages: list[str] | None) -> str | None:
    if not languages:
        return None
    return ",".join(languages)


def split_languages(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]
