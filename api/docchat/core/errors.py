"""
Error taxonomy for the document chat service.

Remote failures are translated into these types at the Gemini client
wrapper. Only the session controller decides how a user recovers from them.
"""


class DocChatError(Exception):
    """Base class for all errors raised by docchat."""


class CredentialError(DocChatError):
    """The API key is missing or was rejected by the remote service."""


class RemoteServiceError(DocChatError):
    """A store or operation call to the remote service failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class UploadError(DocChatError):
    """Ingestion of a single file failed after submission."""

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(f"Upload of '{file_name}' failed: {reason}")
        self.file_name = file_name
        self.reason = reason


class QueryError(DocChatError):
    """A question could not be answered."""


class OperationTimeoutError(DocChatError, TimeoutError):
    """A long-running remote operation did not finish within its budget."""

    def __init__(self, operation_name: str, waited: float, attempts: int) -> None:
        super().__init__(
            f"Operation '{operation_name}' not done after {attempts} polls "
            f"({waited:.1f}s)"
        )
        self.operation_name = operation_name
        self.waited = waited
        self.attempts = attempts


class OperationCancelledError(DocChatError):
    """In-flight work was abandoned because its cancellation token fired."""


class SessionStateError(DocChatError):
    """The requested action is not allowed in the current session state."""


class UnsupportedDocumentError(DocChatError, ValueError):
    """A file was offered that cannot be added to a store."""


class SampleFetchError(DocChatError):
    """A sample document could not be downloaded."""
