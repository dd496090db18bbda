"""
Exception handlers translating chat errors into JSON responses.

Every ``ChatError`` answers with ``{"error": code, "message": ..., "detail": ...}``
and the status code mapped below.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from supplychat.utils.errors import ChatError
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)

STATUS_BY_CODE = {
    "INVALID_PARTICIPANT": status.HTTP_400_BAD_REQUEST,
    "NOT_A_PARTICIPANT": status.HTTP_403_FORBIDDEN,
    "BODY_TOO_LONG": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "EMPTY_MESSAGE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "TRANSIENT_IO": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_body(exc: ChatError) -> dict:
    return {"error": exc.code, "message": exc.message, "detail": exc.details}


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    response = JSONResponse(status_code=status_code, content=error_body(exc))
    if exc.code == "TRANSIENT_IO":
        response.headers["Retry-After"] = "1"
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatError, chat_error_handler)
