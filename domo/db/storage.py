"""Signed URL issuer for demo videos kept in Supabase Storage."""

import logging
from typing import Any

from domo.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class VideoStorage:
    """Storage collaborator: issues time-boxed signed URLs for object paths."""

    def __init__(self, client: Any, bucket: str = "demo-videos") -> None:
        self._client = client
        self._bucket = bucket

    def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        """Create a signed URL for ``path`` valid for ``expires_in`` seconds.

        Raises:
            ExternalServiceError: If storage refuses or returns no URL.
        """
        try:
            response = self._client.storage.from_(self._bucket).create_signed_url(
                path, expires_in
            )
        except Exception as e:
            raise ExternalServiceError("supabase_storage", f"Signed URL request failed: {e}") from e

        # storage3 has returned both spellings across releases
        signed_url = None
        if isinstance(response, dict):
            signed_url = response.get("signedURL") or response.get("signedUrl")
        if not signed_url:
            raise ExternalServiceError("supabase_storage", "Signed URL response was empty")
        return str(signed_url)
