# Service-layer errors for the completion / dispute / payout pipeline
# They subclass HTTPException so routers let them propagate unchanged

from fastapi import HTTPException, status


class PipelineError(HTTPException):
    """Base class for errors raised by pipeline services."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, status_code: int = None):
        super().__init__(status_code=status_code or self.status_code, detail=detail)


class InvalidRequest(PipelineError):
    """Malformed or out-of-range input. Raised before any mutation."""
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(PipelineError):
    """Wrong role, or no standing on the campaign/proposal/dispute."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(PipelineError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(PipelineError):
    """Precondition on the current entity state failed."""
    status_code = status.HTTP_400_BAD_REQUEST


class PayoutFailed(PipelineError):
    """Manual payout could not be issued; the proposal is left retryable."""
    status_code = status.HTTP_400_BAD_REQUEST
