"""
Error taxonomy for the OAuth app marketplace.

Every failure raised by the credential issuer, the rating aggregator or the
store boundary derives from MarketplaceError, which carries the error code,
a human-readable description and the HTTP status the service maps it to.
"""


class MarketplaceError(Exception):
    """Base exception for marketplace domain errors."""

    error_code = "server_error"
    status_code = 500

    def __init__(self, description: str, error_code: str = None, status_code: int = None):
        self.description = description
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(description)

    def to_dict(self) -> dict:
        """Error body in the {error, error_description} shape."""
        return {
            "error": self.error_code,
            "error_description": self.description
        }


class GenerationError(MarketplaceError):
    """The operating system entropy source is unavailable."""

    error_code = "credential_generation_failed"
    status_code = 500


class ExhaustedRetriesError(MarketplaceError):
    """
    Every generated client_id collided with an existing one.

    With 128 bits of entropy this points at a degraded random source, not
    bad luck, so it is treated as fatal and surfaced to operators.
    """

    error_code = "credential_retries_exhausted"
    status_code = 500

    def __init__(self, description: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(description)


class DuplicateReviewError(MarketplaceError):
    """The user already reviewed this application."""

    error_code = "duplicate_review"
    status_code = 409


class InvalidRatingError(MarketplaceError):
    """A rating that is not an integer between 1 and 5."""

    error_code = "invalid_rating"
    status_code = 400


class CredentialConflictError(MarketplaceError):
    """A concurrent regeneration replaced the credentials first."""

    error_code = "credential_conflict"
    status_code = 409


class NotFoundError(MarketplaceError):
    """Requested record does not exist."""

    error_code = "not_found"
    status_code = 404


class ForbiddenError(MarketplaceError):
    """Caller does not own the record it tried to change."""

    error_code = "forbidden"
    status_code = 403
