"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class ServiceError(AppError):
    """Raised when the text-generation service call fails (network, auth, rate limit)."""
    pass


class ServiceTimeoutError(ServiceError):
    """Raised when the text-generation service call times out."""
    pass


class ParseError(AppError):
    """Raised when a reply stays unparseable after repair.

    Only used inside the stage executor; it degrades the stage instead of
    propagating to callers.
    """
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationWarning(AppError):
    """Non-fatal completeness or language issue.

    Collected into a ValidationReport, never raised.
    """
    pass


class MergeRegression(AppError):
    """A refinement would have shrunk an accepted section.

    The merge engine rolls the section back and records one of these
    instead of raising it.
    """

    def __init__(self, section: str, before: int, after: int):
        super().__init__(
            f"Section '{section}' shrank from {before} to {after} items; "
            f"restored accepted version"
        )
        self.section = section
        self.before = before
        self.after = after
