from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError


class LiftSyncError(Exception):
    """Base class for reconciliation and sync failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(LiftSyncError):
    """A referenced aggregate, exercise, session or row no longer exists."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LiftSyncError):
    """A once-only operation was attempted a second time, or a read-only row was edited."""

    status_code = status.HTTP_409_CONFLICT


class InvariantViolation(LiftSyncError):
    """The store or an input shape broke a structural invariant. Never retried."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnknownTableError(InvariantViolation):
    pass


class TransientSyncError(LiftSyncError):
    """The push could not reach the server; rows stay dirty for the next cycle."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class UnauthorizedError(LiftSyncError):
    status_code = status.HTTP_401_UNAUTHORIZED


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors()), "message": "Validation Error", "request_id": request_id},
    )

async def integrity_exception_handler(request: Request, exc: IntegrityError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Database conflict. A record with this identifier likely already exists.", "request_id": request_id},
    )

async def liftsync_exception_handler(request: Request, exc: LiftSyncError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__, "request_id": request_id},
    )
