"""
Global error handling middleware.
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from ecomeasure.domain.errors import (
    AnalysisError,
    InvalidAnalysisParameters,
    UnsupportedMethodForAnalyzer,
)


logger = logging.getLogger(__name__)

# Errors caused by request parameters rather than image content
_UNPROCESSABLE_ERRORS = (UnsupportedMethodForAnalyzer, InvalidAnalysisParameters)


def status_code_for(error: AnalysisError) -> int:
    """
    Map an analysis error to an HTTP status code.

    Args:
        error: Analysis error raised by the engine

    Returns:
        422 for parameter errors, 400 for every other analysis error
    """
    if isinstance(error, _UNPROCESSABLE_ERRORS):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_400_BAD_REQUEST


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches unhandled exceptions and returns consistent error responses.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Process the request and handle any exceptions.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response object
        """
        try:
            response = await call_next(request)
            return response

        except AnalysisError as e:
            status_code = status_code_for(e)
            logger.warning(
                f"Analysis error: {type(e).__name__}: {e.message}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                }
            )
            return JSONResponse(
                status_code=status_code,
                content={
                    "error": type(e).__name__,
                    "detail": e.message,
                }
            )

        except Exception as e:
            # Log unexpected errors
            logger.exception(
                f"Unhandled exception: {str(e)}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred",
                }
            )
