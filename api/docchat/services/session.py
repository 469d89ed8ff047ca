"""
Session orchestrator.

Owns one chat session: its API key, pending documents, remote store,
transcript and example questions. All state changes go through the
transition methods below; no other component mutates session state.

Lifecycle:
    no_key -> key_selected -> files_pending -> uploading -> ready
    ready -> querying -> ready
    uploading -> upload_failed -> (retry) uploading | (new chat) files_pending
    any -> new chat -> files_pending
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from docchat.core.cancellation import CancellationToken
from docchat.core.config import Settings
from docchat.core.errors import (
    CredentialError,
    DocChatError,
    OperationCancelledError,
    SessionStateError,
    UploadError,
)
from docchat.core.security import ApiKey, configured_api_key, normalize_api_key
from docchat.core.telemetry import get_tracer
from docchat.models.chat import ChatMessage
from docchat.models.documents import LocalDocument, Store, UploadProgress
from docchat.models.session import ProgressView, SessionSnapshot, SessionState
from docchat.services.gemini_client import GeminiService
from docchat.services.polling import PollPolicy
from docchat.services.query import QueryService
from docchat.services.stores import StoreService
from docchat.services.suggestions import SuggestionGenerator
from docchat.services.uploads import UploadOrchestrator

logger = logging.getLogger(__name__)

GeminiFactory = Callable[[str], GeminiService]

EDITABLE_STATES = (
    SessionState.NO_KEY,
    SessionState.KEY_SELECTED,
    SessionState.FILES_PENDING,
    SessionState.UPLOAD_FAILED,
)


@dataclass
class SessionServices:
    """Remote clients bound to one API key."""

    stores: StoreService
    uploads: UploadOrchestrator
    query: QueryService
    suggestions: SuggestionGenerator

    @classmethod
    def build(cls, gemini: GeminiService, settings: Settings) -> "SessionServices":
        query = QueryService(gemini)
        return cls(
            stores=StoreService(gemini),
            uploads=UploadOrchestrator(
                gemini,
                PollPolicy.from_settings(settings),
                continue_on_error=settings.continue_on_upload_error,
            ),
            query=query,
            suggestions=SuggestionGenerator(query, count=settings.suggestion_count),
        )


class SessionController:
    """State machine for a single chat session."""

    def __init__(
        self,
        settings: Settings,
        gemini_factory: GeminiFactory | None = None,
        session_id: str = "default",
        progress_listener: Callable[[UploadProgress], None] | None = None,
    ) -> None:
        self._settings = settings
        self._progress_listener = progress_listener
        self._gemini_factory = gemini_factory or (
            lambda api_key: GeminiService(api_key, settings)
        )
        self.session_id = session_id
        self._tracer = get_tracer()

        self._api_key: ApiKey | None = None
        self._services: SessionServices | None = None
        self._pending: list[LocalDocument] = []
        self._ingested: list[LocalDocument] = []
        self._store: Store | None = None
        self._transcript: tuple[ChatMessage, ...] = ()
        self._example_questions: list[str] = []
        self._progress: UploadProgress | None = None
        self._last_error: str | None = None
        self._cancel: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self._state = SessionState.NO_KEY

        key = configured_api_key(settings)
        if key is not None:
            self._use_key(key)
            self._state = SessionState.KEY_SELECTED

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def store(self) -> Store | None:
        return self._store

    @property
    def transcript(self) -> tuple[ChatMessage, ...]:
        return self._transcript

    @property
    def pending_documents(self) -> list[LocalDocument]:
        return list(self._pending)

    @property
    def example_questions(self) -> list[str]:
        return list(self._example_questions)

    @property
    def progress(self) -> UploadProgress | None:
        return self._progress

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def document_name(self) -> str:
        return ", ".join(document.file_name for document in self._ingested)

    @property
    def is_idle(self) -> bool:
        """True when dropping this controller leaks no remote store or running work."""
        return (
            self._store is None
            and (self._task is None or self._task.done())
            and self._cancel is None
            and self._state not in (SessionState.UPLOADING, SessionState.QUERYING)
        )

    def snapshot(self) -> SessionSnapshot:
        progress = None
        if self._progress is not None:
            progress = ProgressView(
                current=self._progress.current,
                total=self._progress.total,
                file_name=self._progress.file_name,
            )
        return SessionSnapshot(
            state=self._state,
            has_api_key=self._api_key is not None,
            pending_documents=[document.file_name for document in self._pending],
            document_name=self.document_name,
            store_name=self._store.name if self._store else None,
            progress=progress,
            transcript=list(self._transcript),
            example_questions=list(self._example_questions),
            last_error=self._last_error,
        )

    # ------------------------------------------------------------------
    # Key and document selection
    # ------------------------------------------------------------------

    def select_key(self, raw_key: str) -> None:
        """
        Use `raw_key` for this session. The key is held in memory only.

        Raises:
            CredentialError: If the key is blank.
            SessionStateError: While work is in flight or a store exists.
        """
        self._require(*EDITABLE_STATES)
        if self._store is not None:
            raise SessionStateError("Start a new chat before changing the API key.")
        self._use_key(ApiKey(value=normalize_api_key(raw_key), source="session"))
        self._last_error = None
        self._transition(
            SessionState.FILES_PENDING if self._pending else SessionState.KEY_SELECTED
        )

    def add_documents(self, documents: Sequence[LocalDocument]) -> None:
        """Queue documents for upload, keeping selection order."""
        self._require(*EDITABLE_STATES)
        self._pending.extend(documents)
        logger.info(
            "Session %s: %d document(s) pending", self.session_id, len(self._pending)
        )
        if self._state == SessionState.KEY_SELECTED:
            self._transition(SessionState.FILES_PENDING)

    def remove_document(self, index: int) -> LocalDocument:
        """
        Remove a pending document by position.

        Documents already ingested into the store stay part of the session
        until a new chat is started.

        Raises:
            IndexError: If there is no document at `index`.
            SessionStateError: If the document is already in the store.
        """
        self._require(*EDITABLE_STATES)
        if not 0 <= index < len(self._pending):
            raise IndexError(f"No pending document at position {index}")
        document = self._pending[index]
        if any(document is ingested for ingested in self._ingested):
            raise SessionStateError(
                f"'{document.file_name}' is already in the store. "
                "Start a new chat to remove it."
            )
        return self._pending.pop(index)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def start_upload(self) -> asyncio.Task:
        """
        Run the upload in the background and return its task.

        Preconditions are checked and the session enters `uploading` before
        this returns. Failures during the upload are recorded on the session.
        """
        services = self._check_upload_allowed()
        cancel = self._begin(SessionState.UPLOADING)
        self._task = asyncio.create_task(self._run_upload(services, cancel))
        return self._task

    async def _run_upload(
        self, services: SessionServices, cancel: CancellationToken
    ) -> None:
        try:
            await self._upload(services, cancel)
        except OperationCancelledError:
            logger.info("Session %s: upload cancelled", self.session_id)
        except DocChatError as exc:
            logger.warning("Session %s: upload failed: %s", self.session_id, exc)
        except Exception:
            logger.exception("Session %s: upload failed unexpectedly", self.session_id)

    async def confirm_upload(self) -> None:
        """
        Create (or reuse) the store, upload pending documents in order, then
        generate example questions.

        On retry after a failed batch the existing store is reused and only
        documents that have not been ingested yet are submitted.

        Raises:
            CredentialError: If no key is set or the key is rejected.
            SessionStateError: If the session is not waiting for an upload.
            UploadError: If a document fails to ingest.
            RemoteServiceError: If the store cannot be created.
            OperationTimeoutError: If ingestion outlasts the poll budget.
            OperationCancelledError: If a new chat interrupts the upload.
        """
        services = self._check_upload_allowed()
        cancel = self._begin(SessionState.UPLOADING)
        await self._upload(services, cancel)

    async def _upload(self, services: SessionServices, cancel: CancellationToken) -> None:
        self._last_error = None
        with self._tracer.start_as_current_span("session.upload") as span:
            span.set_attribute("session.id", self.session_id)
            try:
                if self._store is None:
                    self._ingested = []
                    self._store = await services.stores.create_store(self._store_display_name())
                    cancel.raise_if_cancelled()

                ingested = {id(document) for document in self._ingested}
                batch = [d for d in self._pending if id(d) not in ingested]
                span.set_attribute("session.batch_size", len(batch))
                result = await services.uploads.upload_all(
                    self._store,
                    batch,
                    self._on_progress,
                    cancel,
                    on_uploaded=self._ingested.append,
                )
                if not result.ok:
                    first = result.failures[0]
                    if first.error is not None:
                        raise first.error
                    raise UploadError(first.file_name, first.reason)

                self._example_questions = (
                    await services.suggestions.generate_example_questions(
                        self._store.name, cancel
                    )
                )
            except OperationCancelledError:
                raise
            except CredentialError as exc:
                self._fail_credentials(exc)
                raise
            except DocChatError as exc:
                self._last_error = str(exc)
                self._transition(SessionState.UPLOAD_FAILED)
                raise
            except Exception as exc:
                self._last_error = f"Unexpected error: {exc}"
                self._transition(SessionState.UPLOAD_FAILED)
                raise
            finally:
                self._end(cancel)

            self._progress = None
            self._transition(SessionState.READY)

    def _check_upload_allowed(self) -> SessionServices:
        if self._state == SessionState.NO_KEY:
            self._require_services()
        self._require(SessionState.FILES_PENDING, SessionState.UPLOAD_FAILED)
        if not self._pending:
            raise SessionStateError("Add at least one document before uploading.")
        return self._require_services()

    def _on_progress(self, progress: UploadProgress) -> None:
        self._progress = progress
        if self._progress_listener is not None:
            self._progress_listener(progress)
        logger.info(
            "Session %s: uploading %d/%d '%s'",
            self.session_id,
            progress.current,
            progress.total,
            progress.file_name,
        )

    @staticmethod
    def _store_display_name() -> str:
        return f"chat-session-{datetime.now(timezone.utc):%Y%m%d-%H%M%S}"

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def ask(self, question: str) -> ChatMessage:
        """
        Answer a question and append it plus the answer to the transcript.

        Nothing is appended when the question fails.

        Raises:
            ValueError: If the question is blank.
            SessionStateError: Unless the session is ready.
            QueryError: If the question could not be answered.
            CredentialError: If the key is rejected.
            OperationCancelledError: If a new chat interrupts the query.
        """
        self._require(SessionState.READY)
        question = (question or "").strip()
        if not question:
            raise ValueError("Question must not be empty")
        services = self._require_services()
        cancel = self._begin(SessionState.QUERYING)
        self._last_error = None

        with self._tracer.start_as_current_span("session.ask") as span:
            span.set_attribute("session.id", self.session_id)
            try:
                result = await services.query.query([self._store.name], question, cancel)
            except OperationCancelledError:
                raise
            except CredentialError as exc:
                self._fail_credentials(exc)
                raise
            except DocChatError as exc:
                self._last_error = str(exc)
                self._transition(SessionState.READY)
                raise
            except Exception as exc:
                self._last_error = f"Unexpected error: {exc}"
                self._transition(SessionState.READY)
                raise
            finally:
                self._end(cancel)

            answer = ChatMessage.from_result(result)
            self._transcript = self._transcript + (ChatMessage.from_user(question), answer)
            span.set_attribute("session.transcript_length", len(self._transcript))
            self._transition(SessionState.READY)
            return answer

    # ------------------------------------------------------------------
    # Reset and teardown
    # ------------------------------------------------------------------

    async def new_chat(self) -> None:
        """
        Stop in-flight work, delete the current store and start over.

        Raises:
            RemoteServiceError: If the store could not be deleted. The store
                reference and transcript are kept so the reset can be retried.
        """
        with self._tracer.start_as_current_span("session.new_chat") as span:
            span.set_attribute("session.id", self.session_id)
            await self._cancel_in_flight()
            await self._release_store(strict=True)

            self._pending = []
            self._ingested = []
            self._transcript = ()
            self._example_questions = []
            self._progress = None
            self._last_error = None
            self._transition(
                SessionState.FILES_PENDING if self._api_key else SessionState.NO_KEY
            )

    async def close(self) -> None:
        """Teardown: stop in-flight work and release the store, logging failures."""
        await self._cancel_in_flight()
        await self._release_store(strict=False)

    async def _cancel_in_flight(self) -> None:
        if self._cancel is not None:
            self._cancel.cancel()
        task, self._task = self._task, None
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def _release_store(self, strict: bool) -> None:
        store, self._store = self._store, None
        if store is None:
            return
        if self._services is None:
            logger.warning("No API key available to delete store %s", store.name)
            return
        try:
            await self._services.stores.delete_store(store.name)
        except CredentialError as exc:
            logger.warning("Could not delete store %s: %s", store.name, exc)
        except DocChatError:
            if strict:
                self._store = store
                raise
            logger.exception("Could not delete store %s", store.name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _use_key(self, key: ApiKey) -> None:
        self._api_key = key
        self._services = SessionServices.build(self._gemini_factory(key.value), self._settings)

    def _fail_credentials(self, exc: CredentialError) -> None:
        logger.warning("Session %s: API key rejected: %s", self.session_id, exc)
        self._api_key = None
        self._services = None
        self._last_error = str(exc)
        self._transition(SessionState.NO_KEY)

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            allowed = ", ".join(state.value for state in states)
            raise SessionStateError(
                f"Action not allowed in state '{self._state.value}' (expected {allowed})"
            )

    def _require_services(self) -> SessionServices:
        if self._services is None:
            raise CredentialError("Select a Gemini API key first.")
        return self._services

    def _begin(self, state: SessionState) -> CancellationToken:
        self._cancel = CancellationToken()
        self._transition(state)
        return self._cancel

    def _end(self, cancel: CancellationToken) -> None:
        if self._cancel is cancel:
            self._cancel = None

    def _transition(self, state: SessionState) -> None:
        if state != self._state:
            logger.info(
                "Session %s: %s -> %s", self.session_id, self._state.value, state.value
            )
        self._state = state


class SessionRegistry:
    """
    Maps session ids to controllers for the lifetime of the app.

    Holds at most `max_sessions` controllers. When a new session would exceed
    the cap, the least recently used idle sessions are dropped; sessions that
    own a store or have work in flight are never evicted.
    """

    def __init__(
        self, settings: Settings, gemini_factory: GeminiFactory | None = None
    ) -> None:
        self._settings = settings
        self._gemini_factory = gemini_factory
        self._max_sessions = settings.max_sessions
        self._sessions: OrderedDict[str, SessionController] = OrderedDict()

    def get(self, session_id: str) -> SessionController:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            return session

        self._evict_idle(room_for=1)
        session = SessionController(
            self._settings, self._gemini_factory, session_id=session_id
        )
        self._sessions[session_id] = session
        return session

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_idle(self, room_for: int) -> None:
        excess = len(self._sessions) + room_for - self._max_sessions
        if excess <= 0:
            return
        idle = [sid for sid, session in self._sessions.items() if session.is_idle]
        for session_id in idle[:excess]:
            del self._sessions[session_id]
            logger.info("Evicted idle session %s", session_id)
        if len(idle) < excess:
            logger.warning(
                "Session registry above its cap of %d: %d session(s) are busy",
                self._max_sessions,
                len(self._sessions),
            )

    async def close_all(self) -> None:
        """Release every session's store. Called on app shutdown."""
        sessions, self._sessions = list(self._sessions.values()), OrderedDict()
        for session in sessions:
            await session.close()
        logger.info("Closed %d session(s)", len(sessions))
