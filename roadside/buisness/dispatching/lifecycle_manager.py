"""
LifecycleManager - Domain service for service request transitions

Applies RequestStateMachine edges to a loaded request, writes the history
row for each step and persists through the ORM so the version column
catches concurrent writers.
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy.orm.exc import StaleDataError

from roadside import db
from roadside.buisness.dispatching.errors import (
    ConcurrentModificationError,
    DispatchDomainError,
    DispatchValidationError,
    InvalidTransitionError,
)
from roadside.buisness.dispatching.narrator import DispatchNarrator
from roadside.buisness.dispatching.policies.intent_lock import RequestIntentLockPolicy
from roadside.buisness.dispatching.policies.request_details import RequestDetailsPolicy
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.data.dispatching.status_history import StatusHistory
from roadside.logger import get_logger

if TYPE_CHECKING:
    from roadside.buisness.conversations.conversation_binder import ConversationBinder
    from roadside.buisness.dispatching.context import ServiceRequestContext

logger = get_logger("roadside.domain.dispatching.lifecycle")


class LifecycleManager:
    """
    Domain service for request lifecycle operations.

    Responsibilities:
    - Validate (state, event, actor) against RequestStateMachine
    - Enforce which fields each event may write
    - Emit machine-generated history notes via DispatchNarrator
    """

    MIN_CANCEL_REASON = 5
    NOTE_LENGTH = 500
    MIN_AMOUNT = 1
    MAX_AMOUNT = 100000

    def __init__(self, ctx: 'ServiceRequestContext', binder: Optional['ConversationBinder'] = None):
        self.ctx = ctx
        self.request = ctx.request
        self.binder = binder

    def apply(self, event: str, actor_id: int, actor_role: str, note: Optional[str] = None,
              reason: Optional[str] = None, quotation: Optional[float] = None,
              final_amount: Optional[float] = None) -> str:
        """
        Fire a lifecycle event and commit.

        Args:
            event: One of RequestStateMachine.EVENTS except claim
            actor_id: User firing the event
            actor_role: Role reported by the identity service
            note: Optional free text appended to the history note
            reason: Cancellation / rejection reason
            quotation: Revised quotation (start_travel / start_work only)
            final_amount: Final amount (complete only)

        Returns:
            str: The status before the transition

        Raises:
            InvalidTransitionError: Edge not in the table, wrong actor, or claim
            RequestIntentLockError: Payload writes a field closed for this event
            ConcurrentModificationError: Another writer changed the request first
        """
        request = self.request
        from_status = request.status

        if event == RequestStateMachine.CLAIM:
            raise InvalidTransitionError(
                from_status, event, RequestStateMachine.ASSIGNED, actor_id,
                reason="claims go through the claim coordinator",
            )

        to_status = RequestStateMachine.validate(request, event, actor_id, actor_role)
        RequestIntentLockPolicy.check(request, event, {'quotation': quotation, 'final_amount': final_amount})

        handler = {
            RequestStateMachine.DECLINE: self._decline,
            RequestStateMachine.REJECT: self._reject,
            RequestStateMachine.START_TRAVEL: self._start_travel,
            RequestStateMachine.START_WORK: self._start_work,
            RequestStateMachine.COMPLETE: self._complete,
            RequestStateMachine.CANCEL: self._cancel,
        }[event]

        try:
            # Flush once, at commit, so a stale version surfaces in one place
            with db.session.no_autoflush:
                history_note = handler(actor_id, to_status, note=note, reason=reason,
                                       quotation=quotation, final_amount=final_amount)
        except DispatchDomainError:
            db.session.rollback()
            raise

        request.status = to_status
        db.session.add(StatusHistory(
            request_id=request.id,
            status=to_status,
            event=event,
            actor_id=actor_id,
            note=history_note[:self.NOTE_LENGTH] if history_note else None,
        ))

        try:
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.info(f"Concurrent write on request {request.id} during {event}")
            raise ConcurrentModificationError(
                f"Service request {request.id} was modified concurrently; reload and retry",
                request_id=request.id,
            )

        logger.info(f"Request {request.id}: {from_status} --{event}--> {to_status} by {actor_id}")
        return from_status

    # ========== Event handlers ==========

    def _decline(self, actor_id, to_status, note=None, reason=None, **_):
        # The request stays pending but is now open to every nearby provider
        self.request.target_provider_id = None
        return DispatchNarrator.direct_booking_declined(actor_id, reason or note)

    def _reject(self, actor_id, to_status, note=None, reason=None, **_):
        request = self.request
        request.provider_id = None
        request.assigned_at = None
        if request.target_provider_id == actor_id:
            request.target_provider_id = None
        if self.binder is not None:
            self.binder.deactivate_for_request(request.id, commit=False)
        return DispatchNarrator.assignment_rejected(actor_id, reason or note)

    def _start_travel(self, actor_id, to_status, note=None, quotation=None, **_):
        return self._forward(to_status, note, quotation)

    def _start_work(self, actor_id, to_status, note=None, quotation=None, **_):
        self.request.started_at = datetime.utcnow()
        return self._forward(to_status, note, quotation)

    def _complete(self, actor_id, to_status, note=None, final_amount=None, **_):
        request = self.request
        amount = final_amount if final_amount is not None else request.quotation
        if amount is None:
            raise InvalidTransitionError(
                request.status, RequestStateMachine.COMPLETE, to_status, actor_id,
                reason="final amount or quotation required to complete",
            )
        request.final_amount = self._check_amount(amount, 'final_amount')
        request.completed_at = datetime.utcnow()
        return DispatchNarrator.request_completed(request.final_amount, note)

    def _cancel(self, actor_id, to_status, note=None, reason=None, **_):
        reason = (reason or '').strip()
        if len(reason) < self.MIN_CANCEL_REASON:
            raise DispatchValidationError(
                f"Cancellation reason must be at least {self.MIN_CANCEL_REASON} characters", field='reason'
            )

        request = self.request
        released = request.provider_id
        request.cancelled_at = datetime.utcnow()
        request.cancellation_reason = reason[:self.NOTE_LENGTH]
        # A cancelled request is bound to nobody; the conversation keeps both participants
        request.provider_id = None
        request.assigned_at = None
        if self.binder is not None:
            self.binder.deactivate_for_request(request.id, commit=False)
        return DispatchNarrator.request_cancelled(reason, released)

    def _forward(self, to_status, note, quotation):
        request = self.request
        parts = [DispatchNarrator.status_changed(request.status, to_status, note)]
        if quotation is not None:
            quotation = self._check_amount(quotation, 'quotation', minimum=0)
            parts.append(DispatchNarrator.quotation_revised(request.quotation, quotation))
            request.quotation = quotation
        return " | ".join(parts)

    def _check_amount(self, amount, field, minimum=MIN_AMOUNT):
        return RequestDetailsPolicy.check_number(amount, field, minimum, self.MAX_AMOUNT)
