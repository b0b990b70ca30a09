"""Error types and FastAPI exception handlers producing the JSON error envelope."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from paygate.common.config import GatewaySettings
from paygate.common.logging import logger


class ApiError(Exception):
    """Client-visible failure rendered as `{"error": ..., "message": ...}`."""

    def __init__(self, status_code: int, error: str, message: str | None = None) -> None:
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message

    def to_body(self) -> dict:
        body = {"error": self.error}
        if self.message is not None:
            body["message"] = self.message
        return body


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def unexpected_error_response(request: Request, exc: Exception, config: GatewaySettings) -> JSONResponse:
    """Log `exc` and build the 500 envelope; detail is hidden in production."""

    logger.exception("unhandled_error path=%s error=%s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "Something went wrong" if config.is_production else str(exc),
        },
    )


def register_exception_handlers(app: FastAPI, config: GatewaySettings) -> None:
    """Install the error envelope handlers on `app`."""

    @app.exception_handler(ApiError)
    async def api_error_handler(_: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "message": _validation_message(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_: Request, exc: StarletteHTTPException):
        # Unsupported methods on a known path fall through to "not found" as well.
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return unexpected_error_response(request, exc, config)
