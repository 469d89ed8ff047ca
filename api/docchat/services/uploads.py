"""
Upload orchestrator.

Submits documents to a store one at a time and waits on each ingestion
operation before starting the next:
1. Submit the bytes and receive an operation handle.
2. Poll the handle at a fixed interval until it reports done.
3. Turn an error payload into an UploadError for that file.
"""

import logging
from collections.abc import Callable, Sequence

from docchat.core.cancellation import CancellationToken
from docchat.core.errors import OperationTimeoutError, RemoteServiceError, UploadError
from docchat.core.telemetry import get_tracer
from docchat.models.documents import (
    LocalDocument,
    Store,
    UploadBatchResult,
    UploadFailure,
    UploadOperation,
    UploadProgress,
)
from docchat.services.gemini_client import GeminiService
from docchat.services.polling import PollPolicy, poll_operation

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], None]
UploadedCallback = Callable[[LocalDocument], None]


class UploadOrchestrator:
    """Uploads documents into a store and waits for ingestion to finish."""

    def __init__(
        self,
        gemini: GeminiService,
        policy: PollPolicy,
        continue_on_error: bool = False,
    ) -> None:
        self._gemini = gemini
        self._policy = policy
        self._continue_on_error = continue_on_error
        self._tracer = get_tracer()

    async def upload(
        self,
        store: Store,
        document: LocalDocument,
        cancel: CancellationToken | None = None,
    ) -> UploadOperation:
        """
        Upload one document and wait until the store has ingested it.

        Raises:
            UploadError: If submission fails or the operation ends in error.
            OperationTimeoutError: If ingestion outlasts the poll budget.
            OperationCancelledError: If `cancel` fires.
            CredentialError: If the API key is rejected.
        """
        cancel = cancel or CancellationToken()
        with self._tracer.start_as_current_span("upload.document") as span:
            span.set_attribute("upload.file_name", document.file_name)
            try:
                operation = await cancel.guard(
                    self._gemini.upload_to_store(store.name, document)
                )
                operation = await poll_operation(
                    operation, self._gemini.get_operation, self._policy, cancel
                )
            except RemoteServiceError as exc:
                raise UploadError(document.file_name, str(exc)) from exc

            if operation.failed:
                span.set_attribute("upload.error", operation.error_message)
                raise UploadError(document.file_name, operation.error_message)

            logger.info("Ingested '%s' into %s", document.file_name, store.name)
            return operation

    async def upload_all(
        self,
        store: Store,
        documents: Sequence[LocalDocument],
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
        on_uploaded: UploadedCallback | None = None,
    ) -> UploadBatchResult:
        """
        Upload documents strictly in order, one at a time.

        `on_progress` is called as each file starts and `on_uploaded` as soon
        as a file has been ingested, so callers keep track of finished files
        even when a later error escapes the batch.

        A failed or timed-out file is recorded in the result; with
        continue_on_error disabled the batch stops there, otherwise the
        remaining files still run. Credential errors and cancellation end the
        batch immediately.
        """
        cancel = cancel or CancellationToken()
        result = UploadBatchResult()
        total = len(documents)

        for index, document in enumerate(documents, start=1):
            cancel.raise_if_cancelled()
            if on_progress is not None:
                on_progress(UploadProgress(index, total, document.file_name))
            logger.info("Uploading %d/%d: '%s'", index, total, document.file_name)

            try:
                await self.upload(store, document, cancel)
            except (UploadError, OperationTimeoutError) as exc:
                reason = exc.reason if isinstance(exc, UploadError) else str(exc)
                result.failures.append(UploadFailure(document.file_name, reason, exc))
                if not self._continue_on_error:
                    logger.warning("Aborting batch after failed upload: %s", exc)
                    break
                logger.warning("Continuing after failed upload: %s", exc)
                continue

            result.uploaded.append(document)
            if on_uploaded is not None:
                on_uploaded(document)

        return result
