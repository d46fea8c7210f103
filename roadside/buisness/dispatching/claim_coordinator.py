"""
Claim Coordinator

Turns "several providers tapped accept" into exactly one assignment.

The claim is a single conditional UPDATE on service_requests; the database
decides the winner. Losers re-read the row only to explain why they lost.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import update, or_
from sqlalchemy.exc import SQLAlchemyError

from roadside import db
from roadside.buisness.dispatching import events
from roadside.buisness.dispatching.errors import (
    AlreadyClaimedError,
    DispatchDomainError,
    InvalidTransitionError,
    NotFoundError,
)
from roadside.buisness.dispatching.narrator import DispatchNarrator
from roadside.buisness.dispatching.policies.provider_eligibility import ProviderEligibilityPolicy
from roadside.buisness.dispatching.policies.request_details import RequestDetailsPolicy
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.dispatching.status_history import StatusHistory
from roadside.logger import get_logger

if TYPE_CHECKING:
    from roadside.buisness.conversations.conversation_binder import ConversationBinder
    from roadside.buisness.dispatching.candidate_finder import CandidateFinder
    from roadside.buisness.dispatching.events import DispatchEventBus
    from roadside.buisness.dispatching.identity import IdentityService

logger = get_logger("roadside.domain.dispatching.claim")


class ClaimOutcome(enum.Enum):
    SUCCESS = 'success'
    ALREADY_CLAIMED = 'already_claimed'
    NOT_FOUND = 'not_found'
    INVALID_STATE = 'invalid_state'


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    request_id: int
    provider_id: int
    request: Optional[ServiceRequest] = None
    current_status: Optional[str] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is ClaimOutcome.SUCCESS

    def raise_for_outcome(self) -> 'ClaimResult':
        """Convert a losing outcome into its domain error; returns self on success"""
        if self.outcome is ClaimOutcome.SUCCESS:
            return self
        if self.outcome is ClaimOutcome.ALREADY_CLAIMED:
            raise AlreadyClaimedError(self.request_id)
        if self.outcome is ClaimOutcome.NOT_FOUND:
            raise NotFoundError('ServiceRequest', self.request_id)
        raise InvalidTransitionError(
            self.current_status, RequestStateMachine.CLAIM, RequestStateMachine.ASSIGNED,
            self.provider_id, reason=self.reason,
        )

    def to_dict(self):
        return {
            'outcome': self.outcome.value,
            'request_id': self.request_id,
            'status': self.current_status,
            'reason': self.reason,
        }


class ClaimCoordinator:
    """
    Atomic first-claim-wins assignment of a pending request.

    Responsibilities:
    - Run the compare-and-set UPDATE and classify losing outcomes
    - Record the assignment in the request history
    - Bind the conversation eagerly and announce the assignment
    """

    MIN_QUOTATION = 0
    MAX_QUOTATION = 100000
    MIN_DURATION = 5
    MAX_DURATION = 480

    def __init__(self, identity: 'IdentityService', binder: Optional['ConversationBinder'] = None,
                 event_bus: Optional['DispatchEventBus'] = None,
                 candidate_finder: Optional['CandidateFinder'] = None):
        self.identity = identity
        self.binder = binder
        self.event_bus = event_bus
        self.candidate_finder = candidate_finder

    def claim(self, request_id: int, provider_id: int, quotation: Optional[float] = None,
              estimated_duration_min: Optional[int] = None) -> ClaimResult:
        """
        Attempt to assign request_id to provider_id.

        Returns:
            ClaimResult: SUCCESS for exactly one concurrent caller; the rest get
            ALREADY_CLAIMED, NOT_FOUND or INVALID_STATE. Never raises for a lost race.

        Raises:
            UnauthorizedError: If the provider is unknown or inactive
            DispatchValidationError: If quotation or duration are out of range
        """
        provider = self.identity.get_actor(provider_id)
        quotation, estimated_duration_min = self._validate_terms(quotation, estimated_duration_min)

        request = db.session.get(ServiceRequest, request_id)
        if request is None:
            return ClaimResult(ClaimOutcome.NOT_FOUND, request_id, provider_id)

        refusal = ProviderEligibilityPolicy.claim_refusal(provider, request)
        if refusal:
            logger.info(f"Claim on request {request_id} by {provider_id} refused: {refusal}")
            return ClaimResult(ClaimOutcome.INVALID_STATE, request_id, provider_id,
                               current_status=request.status, reason=refusal)

        now = datetime.utcnow()
        values = {
            'provider_id': provider_id,
            'status': ServiceRequest.STATUS_ASSIGNED,
            'assigned_at': now,
            'updated_at': now,
            'version': ServiceRequest.version + 1,
        }
        if quotation is not None:
            values['quotation'] = quotation
        if estimated_duration_min is not None:
            values['estimated_duration_min'] = estimated_duration_min

        stmt = (
            update(ServiceRequest)
            .where(
                ServiceRequest.id == request_id,
                ServiceRequest.status == ServiceRequest.STATUS_PENDING,
                ServiceRequest.provider_id.is_(None),
                or_(
                    ServiceRequest.target_provider_id.is_(None),
                    ServiceRequest.target_provider_id == provider_id,
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = db.session.execute(stmt)
            if result.rowcount != 1:
                db.session.rollback()
                return self._classify_loss(request_id, provider_id)

            db.session.add(StatusHistory(
                request_id=request_id,
                status=ServiceRequest.STATUS_ASSIGNED,
                event=RequestStateMachine.CLAIM,
                actor_id=provider_id,
                note=DispatchNarrator.request_claimed(provider_id, quotation)[:500],
                timestamp=now,
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(f"Claim on request {request_id} by provider {provider_id} failed", exc_info=True)
            raise

        # Commit expired the identity map; this reload sees the new version
        request = db.session.get(ServiceRequest, request_id)
        logger.info(f"Request {request_id} claimed by provider {provider_id}")

        self._after_claim(request, provider_id)
        return ClaimResult(ClaimOutcome.SUCCESS, request_id, provider_id,
                           request=request, current_status=request.status)

    def _classify_loss(self, request_id: int, provider_id: int) -> ClaimResult:
        request = db.session.get(ServiceRequest, request_id)
        if request is None:
            return ClaimResult(ClaimOutcome.NOT_FOUND, request_id, provider_id)

        status = request.status
        if status == ServiceRequest.STATUS_PENDING and request.target_provider_id not in (None, provider_id):
            return ClaimResult(ClaimOutcome.INVALID_STATE, request_id, provider_id, current_status=status,
                               reason="request is reserved for another provider")

        if status in ServiceRequest.PROVIDER_BOUND_STATUSES or status == ServiceRequest.STATUS_PENDING:
            # pending here means someone claimed and handed it back between our UPDATE and this read
            logger.info(f"Claim on request {request_id} by provider {provider_id} lost: already claimed")
            return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, request_id, provider_id, current_status=status)

        return ClaimResult(ClaimOutcome.INVALID_STATE, request_id, provider_id, current_status=status,
                           reason=f"request is {status}")

    def _after_claim(self, request: ServiceRequest, provider_id: int) -> None:
        if self.binder is not None:
            try:
                self.binder.bind_conversation(request.id)
            except (DispatchDomainError, SQLAlchemyError):
                # The conversation is bound lazily on first access instead
                db.session.rollback()
                logger.error(f"Eager conversation bind failed for request {request.id}", exc_info=True)

        if self.event_bus is None:
            return

        self.event_bus.emit(
            events.REQUEST_ASSIGNED, request.id,
            audience=(request.customer_id, provider_id),
            payload={'provider_id': provider_id, 'status': request.status},
        )

        if self.candidate_finder is not None and not request.is_targeted:
            losers = self.candidate_finder.find_candidates(
                (request.latitude, request.longitude),
                request.broadcast_radius_km,
                exclude=(provider_id,),
                request_id=request.id,
            )
            if not losers.is_empty:
                self.event_bus.emit(events.REQUEST_TAKEN, request.id, audience=losers.provider_ids)

    def _validate_terms(self, quotation, estimated_duration_min):
        quotation = RequestDetailsPolicy.check_number(quotation, 'quotation', self.MIN_QUOTATION, self.MAX_QUOTATION)
        estimated_duration_min = RequestDetailsPolicy.check_number(
            estimated_duration_min, 'estimated_duration_min', self.MIN_DURATION, self.MAX_DURATION, integer=True,
        )
        return quotation, estimated_duration_min
