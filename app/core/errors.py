import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

class AppError(Exception):
    """Base for failures the API turns into a JSON `{"error": ...}` response."""
    status_code: int = 500
    message: str = "An internal server error occurred."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message

class AuthenticationError(AppError):
    status_code = 401
    message = "Not authenticated"

class ChatNotFoundError(AppError):
    # also raised for chats owned by another practitioner
    status_code = 404
    message = "Chat not found or unauthorized"

class UserNotFoundError(AppError):
    status_code = 404
    message = "User not found"

class MessageValidationError(AppError):
    status_code = 400
    message = "Invalid message"

class ResourceNotFoundError(AppError):
    status_code = 404
    message = "Collection not found"

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} for {request.method} {request.url.path}: {exc.message}")
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        detail = f"{loc}: {first.get('msg')}" if loc else first.get("msg", "Invalid request")
        return error_response(400, f"Invalid request: {detail}")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
        return error_response(500, "An internal server error occurred.")
