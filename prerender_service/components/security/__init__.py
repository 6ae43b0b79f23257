"""
Security component for the Prerender Service.

Validates render targets against origin, protocol and private-network policy
before any browser work starts.
"""
from .url_validator import (
    RejectionReason,
    SecurityPolicy,
    ValidationResult,
    is_private_host,
    validate_target_url,
)

__all__ = [
    "RejectionReason",
    "SecurityPolicy",
    "ValidationResult",
    "is_private_host",
    "validate_target_url",
]
