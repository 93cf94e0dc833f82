class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str = "Resource", id: str = ""):
        super().__init__(f"{resource} not found: {id}" if id else f"{resource} not found")


class ConflictError(AppError):
    """Raised when a row with the same id already exists."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message)


class AuthenticationError(AppError):
    """Raised when the bearer token is missing or invalid."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AuthorizationError(AppError):
    """Raised when a user lacks permission for an action."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class LocalPersistenceError(AppError):
    """The on-device store failed. The note's session cannot continue."""

    def __init__(self, message: str = "Local persistence unavailable"):
        super().__init__(message)


class RemoteBackendError(AppError):
    """A call to the remote backend failed. Callers record it and carry on."""

    def __init__(self, message: str = "Remote backend unavailable", status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteNotFoundError(RemoteBackendError):
    def __init__(self, message: str = "Remote resource not found"):
        super().__init__(message, status_code=404)


class RemoteConflictError(RemoteBackendError):
    def __init__(self, message: str = "Remote resource already exists"):
        super().__init__(message, status_code=409)


class ProviderClosedError(AppError):
    """Raised when a destroyed sync provider is used again."""

    def __init__(self, note_id: str = ""):
        super().__init__(f"Sync provider for note {note_id} is destroyed")


class QueuePayloadError(AppError):
    """Raised when a queue payload does not match its entity type and operation."""


class InvalidNoteStateError(AppError):
    """Raised when an uploaded document state is not a valid update."""
