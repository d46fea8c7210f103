"""
Direct Booking Policy

A customer may address a new request to one named provider instead of
broadcasting it. The target must be an active mechanic; availability is
not required, the provider decides by claiming or declining.
"""

from typing import TYPE_CHECKING

from roadside.buisness.dispatching.errors import DispatchValidationError

if TYPE_CHECKING:
    from roadside.data.core.user_info.user import User


class DirectBookingPolicy:

    @classmethod
    def check_target(cls, customer_id: int, target: 'User') -> None:
        """
        Raises:
            DispatchValidationError: If the target cannot receive direct bookings
        """
        if target is None or not target.is_active:
            raise DispatchValidationError("Requested provider was not found", field='target_provider_id')
        if not target.is_mechanic:
            raise DispatchValidationError("Direct bookings must target a mechanic", field='target_provider_id')
        if target.id == customer_id:
            raise DispatchValidationError("Customers cannot book themselves", field='target_provider_id')
