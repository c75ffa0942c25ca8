"""
Custom exception handling for API.
"""
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.exceptions import ValidationError

from metafields.client import MetafieldError
from ratings.exceptions import RatingValidationError, ShopNotAuthorized
import logging

logger = logging.getLogger("api")

GENERIC_REMOTE_ERROR = "Could not reach the store. Please try again later."


def _handle_domain_exception(exc):
    """
    Translate rating and Shopify errors into responses.

    Returns:
        Response or None: None for exceptions this handler does not know
    """
    if isinstance(exc, RatingValidationError):
        return Response(
            {"success": False, "error": str(exc), "error_code": "validation_error"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, ShopNotAuthorized):
        return Response(
            {"success": False, "error": str(exc), "error_code": "shop_not_authorized"},
            status=status.HTTP_401_UNAUTHORIZED,
        )

    if isinstance(exc, MetafieldError):
        # Shopify status/body stay in the logs; the client gets a generic message
        logger.error(
            f"Shopify error: {exc.__class__.__name__}: {exc} "
            f"(status={exc.status_code}, body={exc.body[:500] if exc.body else ''})"
        )
        return Response(
            {"success": False, "error": GENERIC_REMOTE_ERROR, "error_code": "remote_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return None


def custom_exception_handler(exc, context):
    """
    Custom exception handler for DRF.

    Provides better error messages and logging for API errors.

    Args:
        exc: Exception instance
        context: Context dict with view and request info

    Returns:
        Response object with error details
    """
    # Call DRF's default exception handler first
    response = drf_exception_handler(exc, context)

    if response is None:
        response = _handle_domain_exception(exc)

    # Log the error
    if response is not None:
        request = context.get("request")
        view = context.get("view")

        log_data = {
            "status_code": response.status_code,
            "error": str(exc),
            "path": request.path if request else None,
            "method": request.method if request else None,
            "view": view.__class__.__name__ if view else None,
        }

        if response.status_code >= 500:
            logger.error(f"API Server Error: {log_data}")
        elif response.status_code >= 400:
            logger.warning(f"API Client Error: {log_data}")

        # Add error code to response
        if isinstance(exc, ValidationError) and isinstance(response.data, dict):
            response.data["success"] = False
            response.data["error_code"] = "validation_error"

    return response
