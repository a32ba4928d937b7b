"""
Custom exception classes and FastAPI exception handlers.

The service layer raises these domain errors without importing any HTTP
concepts; register_exception_handlers() translates them into responses.

Exception hierarchy:
    LedgerError (base)
    ├── ValidationError     — malformed input, amount below minimum,
    │                         same-wallet transfer, category/type mismatch
    ├── NotFoundError       — wallet/category/bucket/transaction missing
    │                         (or archived, for wallets and buckets)
    └── InvalidStateError   — operating on a deleted transaction, or calling
                              a kind-specific updater on the wrong kind

Idempotency collisions are deliberately absent: a repeated idempotency key
returns the original event instead of raising.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerError(Exception):
    """Base exception for all ledger domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class ValidationError(LedgerError):
    """
    Raised when input violates a schema or business rule.

    Attributes:
        field: The offending input field, when one can be named.
    """

    def __init__(self, detail: str, field: str | None = None):
        self.field = field
        super().__init__(detail)


class NotFoundError(LedgerError):
    """Raised when a referenced wallet, category, bucket or transaction is missing."""

    def __init__(self, resource: str, resource_id: str, detail: str | None = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(detail or f"{resource} {resource_id} not found")


class InvalidStateError(LedgerError):
    """Raised when a precondition on the transaction's current state fails."""

    def __init__(self, detail: str):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain exception handlers with the FastAPI application.

    Every handler responds with {"detail": ..., "error_type": ...}.
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "detail": exc.detail,
                "error_type": "validation_error",
                "field": exc.field,
            },
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(
        request: Request, exc: NotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={
                "detail": exc.detail,
                "error_type": "not_found",
                "resource": exc.resource,
            },
        )

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(
        request: Request, exc: InvalidStateError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,  # Conflict with the transaction's current state
            content={"detail": exc.detail, "error_type": "invalid_state"},
        )
