"""
Custom exceptions for gitgrope.

This module defines domain-specific exceptions that provide better error
categorization and more informative error messages for operators reading
the log stream.
"""


class GitgropeError(Exception):
    """
    Base exception for all gitgrope errors.

    All custom exceptions in gitgrope inherit from this class so callers can
    catch every application-specific error in one place.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(GitgropeError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Unreadable or malformed configuration documents
    - Unknown or mistyped configuration keys
    - Invalid repository names and asset selection rules
    - Storage directories that cannot be created
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or parsed."""

    pass


class ConfigValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    pass


class PatternError(ConfigurationError):
    """
    Exception raised when an asset glob pattern cannot be compiled.

    Attributes:
        pattern: The offending glob expression.
    """

    def __init__(
        self, message: str, pattern: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.pattern = pattern


# =============================================================================
# API Errors
# =============================================================================


class APIError(GitgropeError):
    """
    Exception raised for GitHub API errors.

    This includes:
    - Network failures while talking to the API
    - Non-success HTTP status codes
    - Invalid or malformed API responses
    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the API exception.

        Args:
            message: The primary error message.
            endpoint: The API endpoint that was accessed.
            status_code: The HTTP status code returned.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class RateLimitError(APIError):
    """
    Exception raised when the GitHub API rate limit is exhausted.

    Attributes:
        reset_time: When the rate limit will reset (Unix timestamp).
    """

    def __init__(
        self,
        message: str = "GitHub API rate limit exceeded",
        reset_time: int | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message,
            endpoint=endpoint,
            status_code=403,
            details=f"Resets at: {reset_time}",
        )
        self.reset_time = reset_time


class ResourceNotFoundError(APIError):
    """Exception raised when a repository, release or asset is not found."""

    pass


# =============================================================================
# Release Processing Errors
# =============================================================================


class FetchError(GitgropeError):
    """
    Exception raised when a release asset cannot be downloaded.

    Attributes:
        repository: Full ``owner/repo`` name of the repository.
        asset: Name of the asset being fetched.
        path: Destination path of the download.
    """

    def __init__(
        self,
        message: str,
        repository: str | None = None,
        asset: str | None = None,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.repository = repository
        self.asset = asset
        self.path = path


class LedgerError(GitgropeError):
    """Exception raised when a release marker cannot be checked or written."""

    def __init__(
        self, message: str, path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.path = path
