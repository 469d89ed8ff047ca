"""
Remote store client: creates and releases File Search stores.
"""

import logging

from docchat.core.errors import RemoteServiceError
from docchat.models.documents import Store
from docchat.services.gemini_client import GeminiService

logger = logging.getLogger(__name__)


class StoreService:
    """Creates and deletes the remote collection backing a chat session."""

    def __init__(self, gemini: GeminiService) -> None:
        self._gemini = gemini

    async def create_store(self, display_name: str) -> Store:
        """
        Allocate a new remote store. The caller owns it and must delete it.

        Raises:
            RemoteServiceError: If the remote service rejects the request.
            CredentialError: If the API key is rejected.
        """
        return await self._gemini.create_store(display_name)

    async def delete_store(self, name: str) -> None:
        """
        Release a remote store.

        A store that no longer exists counts as deleted.
        """
        try:
            await self._gemini.delete_store(name)
        except RemoteServiceError as exc:
            if not exc.is_not_found:
                raise
            logger.info("Store %s already deleted", name)
