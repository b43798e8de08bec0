"""
Error taxonomy for authentication and delivery.
"""


class AgentError(Exception):
    """Base class for all agent errors."""


class InvalidTokenFormat(AgentError):
    """Token is malformed, unsigned, or its signature does not verify."""


class VerificationRejected(AgentError):
    """Remote service refused (or failed to confirm) the identity."""


class AuthenticationFailed(AgentError):
    """Renewal was attempted and exhausted."""


class ProvisioningFailed(AgentError):
    """First-run create-account call failed."""


class DeliveryFailed(AgentError):
    """Stats could not be sent (network error or non-2xx)."""


class Unauthorized(AgentError):
    """Remote call answered 401. Triggers renewal, never surfaces to the user."""
