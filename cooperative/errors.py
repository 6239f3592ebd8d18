"""
Domain exceptions raised by the cooperative services.

The API layer maps these onto HTTP responses; anything not derived from
CooperativeError is treated as an unexpected failure.
"""

from typing import Any, Optional


class CooperativeError(Exception):
    """Base exception for cooperative operations"""
    pass


class ValidationError(CooperativeError):
    """Missing or malformed input, rejected before any state changes"""
    pass


class EligibilityError(CooperativeError):
    """Member is not eligible for the requested loan"""

    def __init__(self, reason: str, max_eligible_amount: Optional[Any] = None):
        super().__init__(reason)
        self.reason = reason
        self.max_eligible_amount = max_eligible_amount


class NotFoundError(CooperativeError):
    """Referenced entity does not exist"""
    pass


class InvalidTransitionError(CooperativeError):
    """Requested status change is not allowed from the current state"""
    pass


class TermsNotAcceptedError(CooperativeError):
    """Guarantor tried to accept a request without acknowledging the terms"""
    pass


class GuarantorNotEligibleError(CooperativeError):
    """Member may not act as a guarantor"""
    pass


class TenantError(CooperativeError):
    """Cooperative tenant is missing, duplicated or inactive"""
    pass
