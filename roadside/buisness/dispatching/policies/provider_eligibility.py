"""
Provider Eligibility Policy

Decides whether a provider may take a request at claim time. Broadcast
requests are offered only to available providers near the breakdown, so a
provider who is off duty or has no known position cannot accept them; a
direct booking was addressed to the provider by the customer and skips
both checks.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from roadside.data.core.user_info.user import User
    from roadside.data.dispatching.service_request import ServiceRequest


class ProviderEligibilityPolicy:

    @classmethod
    def claim_refusal(cls, provider: 'User', request: Optional['ServiceRequest'] = None) -> Optional[str]:
        """
        Return a reason the provider may not claim, or None when eligible.

        Args:
            provider: Claiming user (already known to be active)
            request: Request being claimed, if it was loaded
        """
        if not provider.is_mechanic:
            return "only mechanics can accept service requests"

        if request is not None and request.target_provider_id == provider.id:
            return None

        if not provider.is_available:
            return "provider is not available for broadcast requests"

        if not provider.has_position:
            return "provider location is required before accepting broadcast requests"

        return None
