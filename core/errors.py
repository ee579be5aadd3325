"""
core/errors.py -- Exception hierarchy for AccessGate.

Core components (auth/, access/) raise these typed errors; the HTTP boundary
in api/main.py maps each class to a status code and a uniform JSON envelope.
The CLI in main.py maps them to exit codes. Nothing below the boundary ever
builds an HTTP response itself.

Every error carries a stable machine-readable `code` alongside the human
message, so clients can branch on the code without parsing prose.

Layer rule: core/ is the kernel. This module imports nothing from the project.
"""


class AccessGateError(Exception):
    """Base exception for all AccessGate errors."""

    def __init__(self, message: str = "", code: str = "accessgate_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(AccessGateError):
    """Raised at startup when required configuration is missing or unusable.

    Fatal: the process must refuse to start. Never raised per request.
    """

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message, code="configuration_error")


class ValidationError(AccessGateError):
    """Raised when input is empty or malformed, before the store is touched."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, code="validation_error")


class AuthenticationError(AccessGateError):
    """Bad credentials or a bad/expired/malformed token.

    The message is deliberately generic: callers must not be able to tell an
    unknown identity from a wrong secret.
    """

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="unauthenticated")


class AuthorizationError(AccessGateError):
    """A valid principal lacks the role the operation requires."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, code="forbidden")


class NotFoundError(AccessGateError):
    """Raised when an administrative operation targets a missing record."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="not_found")


class ConflictError(AccessGateError):
    """Raised when a write would violate a uniqueness rule (email, card UID)."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, code="conflict")


class StoreError(AccessGateError):
    """Transaction failure or lost connectivity.

    Always raised after the enclosing transaction has been rolled back. The
    message is safe to show to callers; the underlying driver error is logged,
    never returned.
    """

    def __init__(self, message: str = "Internal storage failure"):
        super().__init__(message, code="store_error")
