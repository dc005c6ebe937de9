"""Custom exceptions for the contact resolution domain."""

ACCESS_GUIDANCE = (
    "Check that this process is allowed to read the contact directory "
    "(for the macOS Contacts app: System Settings > Privacy & Security > Contacts), "
    "then retry."
)


class ResolverError(Exception):
    """Base exception for this project."""


class ConfigError(ResolverError):
    """Raised when runtime configuration is invalid."""


class InvalidInputError(ResolverError, ValueError):
    """Raised when a lookup query is rejected before touching cache or source."""


class AccessDeniedError(ResolverError):
    """Raised when the directory source is unreachable or refuses access."""

    def __init__(self, message: str, guidance: str = ACCESS_GUIDANCE) -> None:
        super().__init__(message)
        self.guidance = guidance

    def __str__(self) -> str:
        return f"{self.args[0]} {self.guidance}".strip()


class DirectoryFetchError(ResolverError):
    """Raised when a full directory fetch fails unexpectedly."""


class MalformedRecordError(ResolverError):
    """Raised when a single record from the source fails validation."""


class TransientLookupError(ResolverError):
    """Raised when a targeted lookup failed but a retry might succeed."""
