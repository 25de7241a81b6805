# errors.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    message = "Something went wrong."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthorized(AppError):
    status_code = 401
    message = "You need to log in."


class InvalidCredentials(Unauthorized):
    message = "Invalid email or password."


class Forbidden(AppError):
    status_code = 403
    message = "You are not allowed to do that."


class OnboardingRequired(Forbidden):
    message = "Finish setting up your profile first."


class CannotModifySelf(Forbidden):
    message = "You cannot do that to your own account."


class NotFound(AppError):
    status_code = 404
    message = "Not found."


class ValidationError(AppError):
    status_code = 400
    message = "Invalid input."


class InvalidScore(ValidationError):
    message = "Score must be an integer from 1 to 5."


class InvalidContent(ValidationError):
    message = "Comment must not be empty."


class Conflict(AppError):
    status_code = 409
    message = "Conflict with existing data."


class EmailAlreadyRegistered(Conflict):
    message = "This email address is already registered."


class HandleAlreadyTaken(Conflict):
    message = "This user ID is already taken."


class ExpiredOrInvalidToken(AppError):
    status_code = 400
    message = "Invalid or expired token."


class CodeNotFound(ExpiredOrInvalidToken):
    message = "No verification code found. Request a new one."


class CodeMismatch(ExpiredOrInvalidToken):
    message = "The verification code is incorrect."


class CodeExpired(ExpiredOrInvalidToken):
    message = "The verification code has expired."


class InvalidToken(ExpiredOrInvalidToken):
    message = "Invalid token."


class TokenExpired(ExpiredOrInvalidToken):
    message = "The token has expired."


class InternalError(AppError):
    pass


def _body(exc: AppError) -> dict:
    return {"message": exc.message, "error": type(exc).__name__}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(_body(exc), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
        message = f"Invalid value for {field}." if field else ValidationError.message
        return JSONResponse({"message": message, "error": "ValidationError"}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(_body(InternalError()), status_code=500)
