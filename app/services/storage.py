"""Supabase object storage for captured screenshots."""

import asyncio
import logging
from typing import Optional

from supabase import Client, create_client

from app.config.settings import settings

logger = logging.getLogger(__name__)


class SupabaseImageStorage:
    """Store bytes under a key in a public bucket and return the public URL."""

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[Client] = None,
    ) -> None:
        """
        Args:
            url: Supabase project URL
            key: Supabase service key
            bucket: storage bucket name
            client: pre-built client (tests)
        """
        self.bucket = bucket or settings.SUPABASE_BUCKET
        self.client: Optional[Client] = client
        url = url or settings.SUPABASE_URL
        key = key or settings.SUPABASE_KEY
        if self.client is None and url and key:
            self.client = create_client(url, key)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload (upsert) bytes and return their public URL."""
        if self.client is None:
            raise RuntimeError("Supabase storage is not configured")

        bucket = self.client.storage.from_(self.bucket)
        loop = asyncio.get_running_loop()
        # supabase-py storage calls are blocking
        await loop.run_in_executor(
            None,
            lambda: bucket.upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            ),
        )
        public_url = bucket.get_public_url(key)
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{key}")
        return public_url
