"""Deduplication service to prevent duplicate repository records"""

from typing import Any, List, Sequence
import logging

logger = logging.getLogger(__name__)


class RepositoryDeduplicator:
    """Filters discovery candidates against the store with one batched lookup"""

    def __init__(self, store: Any):
        self.store = store

    def existing(self, identifiers: Sequence[str]) -> set[str]:
        """
        Return the subset of identifiers already stored

        Empty input short-circuits without touching the store.
        """
        if not identifiers:
            return set()
        return self.store.existing_identifiers(list(identifiers))

    def annotate(self, candidates: List[Any]) -> List[Any]:
        """
        Drop in-batch duplicates and flag each candidate with `exists_in_store`

        Args:
            candidates: discovery candidates exposing `identifier`

        Returns:
            Unique candidates in first-seen order
        """
        unique = []
        seen = set()
        for candidate in candidates:
            key = candidate.identifier.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)

        stored = {identifier.lower() for identifier in self.existing([c.identifier for c in unique])}
        for candidate in unique:
            candidate.exists_in_store = candidate.identifier.lower() in stored

        logger.info(f"Deduplicated {len(candidates)} candidates: {len(unique) - len(stored)} new, {len(stored)} stored")
        return unique

    def filter_new(self, candidates: List[Any]) -> List[Any]:
        """Return only candidates not present in the store"""
        return [candidate for candidate in self.annotate(candidates) if not candidate.exists_in_store]
