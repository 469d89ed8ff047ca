"""
Gemini API client wrapper.

Handles File Search store management, file ingestion operations and
content generation with the file_search tool. SDK and transport errors are
translated into the docchat error taxonomy here and nowhere else.
"""

import io
import logging
from collections.abc import Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from docchat.core.config import Settings
from docchat.core.errors import CredentialError, RemoteServiceError
from docchat.core.telemetry import get_tracer
from docchat.models.documents import LocalDocument, Store, UploadOperation

logger = logging.getLogger(__name__)


def translate_error(exc: Exception, action: str) -> Exception:
    """Map an SDK or transport exception onto CredentialError / RemoteServiceError."""
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    if code in (401, 403) or (code == 400 and "api key" in message.lower()):
        return CredentialError(f"Gemini rejected the API key: {message}")
    return RemoteServiceError(f"{action} failed: {message}", status_code=code)


class GeminiService:
    """Wrapper around the Gemini API for File Search stores and generation."""

    def __init__(self, api_key: str, settings: Settings) -> None:
        self._settings = settings
        self._tracer = get_tracer()
        self._client = genai.Client(api_key=api_key)

    @property
    def model(self) -> str:
        return self._settings.gemini_model

    async def create_store(self, display_name: str) -> Store:
        """
        Create a new File Search store.

        Args:
            display_name: Human readable name shown in the Gemini console.

        Returns:
            The created Store with its server-assigned name.
        """
        with self._tracer.start_as_current_span("gemini.create_store") as span:
            span.set_attribute("gemini.store_display_name", display_name)
            try:
                store = await self._client.aio.file_search_stores.create(
                    config={"display_name": display_name}
                )
            except (genai_errors.APIError, httpx.HTTPError) as exc:
                raise translate_error(exc, "Store creation") from exc
            span.set_attribute("gemini.store_name", store.name)
            logger.info("Created File Search store %s (%s)", store.name, display_name)
            return Store(name=store.name, display_name=store.display_name or display_name)

    async def delete_store(self, name: str) -> None:
        """Delete a store and every document it holds."""
        with self._tracer.start_as_current_span("gemini.delete_store") as span:
            span.set_attribute("gemini.store_name", name)
            try:
                await self._client.aio.file_search_stores.delete(
                    name=name, config={"force": True}
                )
            except (genai_errors.APIError, httpx.HTTPError) as exc:
                raise translate_error(exc, "Store deletion") from exc
            logger.info("Deleted File Search store %s", name)

    async def upload_to_store(
        self, store_name: str, document: LocalDocument
    ) -> UploadOperation:
        """
        Submit a document for ingestion.

        Returns immediately with the operation handle; ingestion continues
        on the remote side until the handle reports done.
        """
        with self._tracer.start_as_current_span("gemini.upload") as span:
            span.set_attribute("gemini.store_name", store_name)
            span.set_attribute("gemini.file_name", document.file_name)
            span.set_attribute("gemini.file_size", document.size)
            try:
                operation = await self._client.aio.file_search_stores.upload_to_file_search_store(
                    file_search_store_name=store_name,
                    file=io.BytesIO(document.content),
                    config=types.UploadToFileSearchStoreConfig(
                        display_name=document.file_name,
                        mime_type=document.mime_type,
                    ),
                )
            except (genai_errors.APIError, httpx.HTTPError) as exc:
                raise translate_error(exc, f"Upload of '{document.file_name}'") from exc
            return self._to_operation(operation)

    async def get_operation(self, operation: UploadOperation) -> UploadOperation:
        """Fetch the current status of an upload operation."""
        with self._tracer.start_as_current_span("gemini.get_operation") as span:
            span.set_attribute("gemini.operation", operation.name)
            try:
                refreshed = await self._client.aio.operations.get(operation.handle)
            except (genai_errors.APIError, httpx.HTTPError) as exc:
                raise translate_error(exc, "Operation status") from exc
            return self._to_operation(refreshed)

    async def generate_with_file_search(
        self, store_names: Sequence[str], prompt: str
    ) -> types.GenerateContentResponse:
        """
        Generate an answer with the file_search tool bound to the stores.

        The tool is offered to the model, which decides per prompt whether
        retrieval is needed.
        """
        with self._tracer.start_as_current_span("gemini.generate") as span:
            span.set_attribute("gemini.model", self.model)
            span.set_attribute("gemini.store_count", len(store_names))
            tool = types.Tool(
                file_search=types.FileSearch(file_search_store_names=list(store_names))
            )
            try:
                response = await self._client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config=types.GenerateContentConfig(tools=[tool]),
                )
            except (genai_errors.APIError, httpx.HTTPError) as exc:
                raise translate_error(exc, "Generation") from exc

            usage = response.usage_metadata
            if usage is not None:
                span.set_attribute("gemini.total_tokens", usage.total_token_count or 0)
                logger.info("Generation: %d tokens used", usage.total_token_count or 0)
            return response

    @staticmethod
    def _to_operation(operation) -> UploadOperation:
        return UploadOperation(
            name=operation.name or "",
            done=bool(operation.done),
            error=operation.error,
            handle=operation,
        )
