# =============================================================================
# Error taxonomy for the questions service
# =============================================================================
#
# Services and the repository raise these; app.main maps each class to an
# HTTP status in a single exception handler.


class QuestionsServiceError(Exception):
    """Base exception for the questions service"""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(QuestionsServiceError):
    """Raised when required question fields are missing"""

    status_code = 400


class NotFoundError(QuestionsServiceError):
    """Raised when a question or article is absent or disabled"""

    status_code = 404


class ForbiddenError(QuestionsServiceError):
    """Raised on ownership or role violations"""

    status_code = 403


class RepositoryError(QuestionsServiceError):
    """Raised when the storage layer fails; the original error is chained"""

    status_code = 500


class UpstreamError(QuestionsServiceError):
    """Raised when the catalog or auth service is unreachable or answers non-2xx"""

    status_code = 502

    def __init__(self, message: str = "", upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
