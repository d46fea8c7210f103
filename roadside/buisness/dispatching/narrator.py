"""
DispatchNarrator - Note composer for service request lifecycle events

Ensures every transition produces a consistent machine-generated history note.
Separates audit narrative formatting from transition logic.
"""

from typing import Optional


class DispatchNarrator:
    """
    Composes machine-generated notes for StatusHistory rows.

    All methods return plain text; callers truncate to the history note length.
    """

    @staticmethod
    def request_created(request) -> str:
        """Note for request creation"""
        if request.target_provider_id:
            return f"Service request created (direct booking for provider {request.target_provider_id})"
        return "Service request created"

    @staticmethod
    def request_claimed(provider_id: int, quotation: Optional[float] = None) -> str:
        """Note for a successful claim"""
        note = f"Request accepted by provider {provider_id}"
        if quotation is not None:
            note += f" | Quotation: {quotation:g}"
        return note

    @staticmethod
    def direct_booking_declined(provider_id: int, reason: Optional[str] = None) -> str:
        note = f"Direct booking declined by provider {provider_id}; request opened to broadcast"
        if reason:
            note += f" | Reason: {reason}"
        return note

    @staticmethod
    def assignment_rejected(provider_id: int, reason: Optional[str] = None) -> str:
        """Note when the assigned provider hands the request back"""
        note = f"Provider {provider_id} rejected the assignment; request reopened"
        if reason:
            note += f" | Reason: {reason}"
        return note

    @staticmethod
    def status_changed(from_status: str, to_status: str, note: Optional[str] = None) -> str:
        """Note for ordinary forward transitions"""
        comment = f"Status changed: {from_status} → {to_status}"
        if note:
            comment += f" | {note}"
        return comment

    @staticmethod
    def request_completed(final_amount: float, note: Optional[str] = None) -> str:
        comment = f"Service completed | Final amount: {final_amount:g}"
        if note:
            comment += f" | {note}"
        return comment

    @staticmethod
    def request_cancelled(reason: str, released_provider_id: Optional[int] = None) -> str:
        """Note for request cancellation, naming the provider it was released from"""
        comment = f"Request cancelled | Reason: {reason}"
        if released_provider_id is not None:
            comment += f" | Released from provider {released_provider_id}"
        return comment

    @staticmethod
    def quotation_revised(old: Optional[float], new: float) -> str:
        if old is None:
            return f"Quotation set: {new:g}"
        return f"Quotation revised: {old:g} → {new:g}"

    @staticmethod
    def payment_details(payment) -> str:
        """One-line summary of a payment for logs"""
        parts = [
            f"Payment {payment.id}",
            f"Amount: {payment.currency} {payment.amount:g}",
            f"Fee: {payment.processing_fee:g}",
            f"Status: {payment.status}",
        ]
        if payment.gateway_order_id:
            parts.append(f"Order: {payment.gateway_order_id}")
        return " | ".join(parts)
