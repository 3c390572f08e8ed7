"""Error taxonomy for the provisioning pipeline.

Every error is a DRF ``APIException`` so views can simply raise and let
:func:`api_exception_handler` render a short ``{"error": ...}`` body. The
``detail`` of each error is the client-facing message and must never carry
internal exception text, raw identifiers or secrets; the specifics belong in
the security audit log.
"""

from __future__ import annotations

from typing import Any

from rest_framework import exceptions, status
from rest_framework.views import exception_handler as drf_exception_handler


class ProvisioningError(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "provisioning_error"
    default_detail = "The request could not be processed."


class ClientInputError(ProvisioningError):
    default_code = "invalid_input"
    default_detail = "Invalid request."

    def __init__(self, detail: str | None = None, *, field: str = ""):
        super().__init__(detail=detail)
        self.field = field


class AbuseError(ProvisioningError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "rate_limited"
    default_detail = "Too many attempts. Please try again later."

    def __init__(self, detail: str | None = None, *, wait: int):
        super().__init__(detail=detail)
        # DRF's handler turns ``wait`` into the Retry-After header.
        self.wait = max(int(wait), 1)


class NotFoundError(ProvisioningError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_detail = "Not found."


class SecurityViolation(ProvisioningError):
    default_code = "rejected"
    default_detail = "The request was rejected."


class UpstreamError(ProvisioningError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "upstream_error"
    default_detail = "A dependent service failed. Please try again."

    def __init__(self, detail: str | None = None, *, retryable: bool = False):
        super().__init__(detail=detail)
        self.retryable = retryable


class GatewayNotConfigured(ProvisioningError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "gateway_not_configured"
    default_detail = "Payment gateway not configured."


class ProvisioningFailed(ProvisioningError):
    """Account creation failed before anything was written."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "provisioning_failed"
    default_detail = "Failed to create account."


class UnexpectedError(ProvisioningError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "unexpected_error"
    default_detail = "An unexpected error occurred"


class PartialProvisioningError(ProvisioningError):
    """A step after account creation failed and the account was rolled back."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "provisioning_rolled_back"
    default_detail = "Failed to create restaurant profile."


def _first_message(data: Any) -> str:
    if isinstance(data, dict):
        for value in data.values():
            message = _first_message(value)
            if message:
                return message
        return ""
    if isinstance(data, (list, tuple)):
        for value in data:
            message = _first_message(value)
            if message:
                return message
        return ""
    return str(data or "").strip()


def api_exception_handler(exc, context):
    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ParseError):
        message = "Invalid request body"
    elif isinstance(exc, exceptions.ValidationError):
        message = _first_message(response.data) or ClientInputError.default_detail
    else:
        message = _first_message(getattr(exc, "detail", "")) or ProvisioningError.default_detail

    body: dict[str, Any] = {"error": message}
    wait = getattr(exc, "wait", None)
    if wait:
        body["retry_after"] = int(wait)
    if getattr(exc, "retryable", False):
        body["retryable"] = True

    response.data = body
    return response
