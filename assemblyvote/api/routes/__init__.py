"""Top level API router registration."""
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from assemblyvote.api.routes import attendance, auth, delegations, health, reports, votes
from assemblyvote.core.errors import CoreError, OperationResult

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


async def _core_error_handler(_request: Request, exc: CoreError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=OperationResult.from_error(exc).to_dict())


async def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(
        status_code=422,
        content={"success": False, "code": "VALIDATION_ERROR", "message": message},
    )


async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "code": _HTTP_CODES.get(exc.status_code, "HTTP_ERROR"),
            "message": str(exc.detail),
        },
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(application: FastAPI) -> None:
    """Render every failure as the ``{"success": false, "code", "message"}`` envelope."""
    application.add_exception_handler(CoreError, _core_error_handler)  # type: ignore[arg-type]
    application.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    application.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]


def register_routes(application: FastAPI) -> None:
    """Register all API routers with the FastAPI application."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
    api_router.include_router(delegations.router, tags=["delegations"])
    api_router.include_router(votes.router, tags=["votes"])
    api_router.include_router(attendance.router, tags=["attendance"])
    api_router.include_router(reports.router, tags=["reports"])

    application.include_router(api_router)
    register_exception_handlers(application)


__all__ = ["register_exception_handlers", "register_routes"]
