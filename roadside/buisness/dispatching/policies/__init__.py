"""
Dispatching business policies

Policies validate business rules and constraints:
- RequestIntentLockPolicy: which fields a transition may write
- DirectBookingPolicy: who may receive a direct booking
- ProviderEligibilityPolicy: who may claim a request
- RequestDetailsPolicy: what a new request must contain
"""

from roadside.buisness.dispatching.policies.intent_lock import RequestIntentLockPolicy
from roadside.buisness.dispatching.policies.direct_booking import DirectBookingPolicy
from roadside.buisness.dispatching.policies.provider_eligibility import ProviderEligibilityPolicy
from roadside.buisness.dispatching.policies.request_details import RequestDetailsPolicy

__all__ = [
    'RequestIntentLockPolicy',
    'DirectBookingPolicy',
    'ProviderEligibilityPolicy',
    'RequestDetailsPolicy',
]
