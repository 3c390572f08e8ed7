from .razorpay import (
    SUCCESSFUL_PAYMENT_STATUSES,
    GatewayConfigurationError,
    GatewayCredentials,
    GatewayError,
    GatewayTimeout,
    RazorpayClient,
    compute_payment_signature,
    compute_webhook_signature,
    from_minor_units,
    get_gateway_credentials,
    signatures_match,
    to_minor_units,
)

__all__ = [
    "SUCCESSFUL_PAYMENT_STATUSES",
    "GatewayConfigurationError",
    "GatewayCredentials",
    "GatewayError",
    "GatewayTimeout",
    "RazorpayClient",
    "compute_payment_signature",
    "compute_webhook_signature",
    "from_minor_units",
    "get_gateway_credentials",
    "signatures_match",
    "to_minor_units",
]
