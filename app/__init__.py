"""Repository discovery, ingestion and enrichment pipeline."""
