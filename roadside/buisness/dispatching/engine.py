"""
DispatchEngine - Facade over the dispatch components

Wires the candidate finder, claim coordinator, lifecycle manager,
conversation binder, settlement coordinator and review manager behind the
operations the presentation layer calls. One engine is built per app in
create_app() and stored in app.extensions['dispatch_engine'].
"""

from typing import Optional

from roadside import db
from roadside.buisness.conversations.conversation_binder import ConversationBinder
from roadside.buisness.dispatching import events
from roadside.buisness.dispatching.candidate_finder import (
    Candidate,
    CandidateFinder,
    CandidateSet,
    UserPositionSource,
    haversine_km,
)
from roadside.buisness.dispatching.claim_coordinator import ClaimCoordinator, ClaimResult
from roadside.buisness.dispatching.context import ServiceRequestContext
from roadside.buisness.dispatching.errors import (
    DispatchDomainError,
    DispatchValidationError,
    DuplicateSettlementError,
    PaymentGatewayError,
    UnauthorizedError,
)
from roadside.buisness.dispatching.events import DispatchEventBus
from roadside.buisness.dispatching.identity import IdentityService
from roadside.buisness.dispatching.narrator import DispatchNarrator
from roadside.buisness.dispatching.policies import DirectBookingPolicy, RequestDetailsPolicy
from roadside.buisness.dispatching.projections import project_request
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.buisness.reviews.review_manager import ReviewManager
from roadside.buisness.settlement.fees import FeeSchedule
from roadside.buisness.settlement.gateway import RazorpayGatewayClient
from roadside.buisness.settlement.settlement_coordinator import SettlementCoordinator
from roadside.data.conversations.conversation import Conversation
from roadside.data.core.user_info.user import User
from roadside.data.dispatching.request_note import RequestNote
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.dispatching.status_history import StatusHistory
from roadside.logger import get_logger

logger = get_logger("roadside.domain.dispatching.engine")


class DispatchEngine:
    """
    Request Dispatch & Lifecycle Engine.

    Every operation is a reactive, per-call unit of work; nothing here
    schedules, retries or caches between calls.
    """

    TRANSITION_PAYLOAD = {'note', 'reason', 'quotation', 'final_amount'}

    def __init__(self, identity=None, candidate_finder=None, binder=None, settlement=None,
                 reviews=None, event_bus=None, default_radius_km: float = 10.0,
                 max_radius_km: float = CandidateFinder.MAX_RADIUS_KM):
        self.event_bus = event_bus or DispatchEventBus()
        self.identity = identity or IdentityService()
        self.candidate_finder = candidate_finder or CandidateFinder(max_radius_km=max_radius_km)
        self.binder = binder or ConversationBinder()
        self.claims = ClaimCoordinator(self.identity, binder=self.binder, event_bus=self.event_bus,
                                       candidate_finder=self.candidate_finder)
        self.settlement = settlement
        self.reviews = reviews or ReviewManager(self.identity, event_bus=self.event_bus)
        self.default_radius_km = default_radius_km
        self.max_radius_km = max_radius_km

    # ========== Requests ==========

    def create_request(self, customer_id: int, details: dict) -> ServiceRequest:
        """
        Create a pending request for a customer.

        A `target_provider_id` in details makes it a direct booking: only that
        provider can claim it until they decline.
        """
        customer = self.identity.get_actor(customer_id)
        if customer.role != User.ROLE_CUSTOMER:
            raise UnauthorizedError("Only customers can create service requests", actor_id=customer_id)

        values = RequestDetailsPolicy.normalize(details, self.default_radius_km, self.max_radius_km)
        target_id = values.get('target_provider_id')
        if target_id is not None:
            DirectBookingPolicy.check_target(customer.id, db.session.get(User, target_id))

        request = ServiceRequest(customer_id=customer.id, status=ServiceRequest.STATUS_PENDING, **values)
        db.session.add(request)
        db.session.flush()
        db.session.add(StatusHistory(
            request_id=request.id,
            status=request.status,
            event='create',
            actor_id=customer.id,
            note=DispatchNarrator.request_created(request),
        ))
        db.session.commit()

        logger.info(f"Service request {request.id} created by customer {customer.id}"
                    + (f" for provider {target_id}" if target_id else ""))
        self.event_bus.emit(events.REQUEST_CREATED, request.id, audience=(customer.id, target_id))
        return request

    def get_request(self, request_id: int) -> ServiceRequest:
        return ServiceRequestContext.load(request_id).request

    def broadcast(self, request_id: int) -> CandidateSet:
        """
        Compute who should hear about a pending request.

        Direct bookings go to their target only; providers who already
        declined or handed the request back are left out.
        """
        ctx = ServiceRequestContext.load(request_id)
        request = ctx.request
        if request.status != RequestStateMachine.PENDING:
            return CandidateSet(request.id, request.latitude, request.longitude, request.broadcast_radius_km)

        if request.is_targeted:
            result = CandidateSet(request.id, request.latitude, request.longitude,
                                  request.broadcast_radius_km, self._target_candidate(request))
        else:
            result = self.candidate_finder.find_candidates(
                (request.latitude, request.longitude), request.broadcast_radius_km,
                exclude=ctx.released_provider_ids, request_id=request.id,
            )

        logger.info(f"Broadcast request {request.id} to {len(result)} provider(s)")
        if not result.is_empty:
            self.event_bus.emit(events.REQUEST_BROADCAST, request.id, audience=result.provider_ids,
                                payload={'radius_km': result.radius_km})
        return result

    def _target_candidate(self, request):
        target = db.session.get(User, request.target_provider_id)
        if target is None or not target.is_active:
            return ()
        distance = None
        if target.has_position:
            distance = haversine_km(request.latitude, request.longitude, target.latitude, target.longitude)
        return (Candidate(target.id, distance, target.rating or 0.0),)

    def claim(self, request_id: int, provider_id: int, quotation: Optional[float] = None,
              estimated_duration_min: Optional[int] = None) -> ClaimResult:
        return self.claims.claim(request_id, provider_id, quotation, estimated_duration_min)

    def transition(self, request_id: int, actor_id: int, event: str, **payload) -> ServiceRequest:
        """
        Fire a lifecycle event.

        Payload keys: note, reason, quotation, final_amount. Completing a
        request triggers settlement automatically; a settlement failure is
        logged and leaves the request completed.
        """
        unknown = set(payload) - self.TRANSITION_PAYLOAD
        if unknown:
            raise DispatchValidationError(f"Unsupported transition fields: {', '.join(sorted(unknown))}")

        role = self.identity.role_of(actor_id)
        ctx = ServiceRequestContext.load(request_id, binder=self.binder)
        request = ctx.request
        previous_provider = request.provider_id
        previous_target = request.target_provider_id

        from_status = ctx.lifecycle.apply(event, actor_id, role, **payload)

        audience = (request.customer_id, request.provider_id or previous_provider, previous_target)
        if event == RequestStateMachine.CANCEL:
            self.event_bus.emit(events.REQUEST_CANCELLED, request.id, audience=audience,
                                payload={'reason': request.cancellation_reason})
        else:
            self.event_bus.emit(events.REQUEST_STATUS_CHANGED, request.id, audience=audience,
                                payload={'event': event, 'from': from_status, 'to': request.status})

        if event == RequestStateMachine.COMPLETE:
            self._settle_after_completion(request.id)
        return request

    def add_note(self, request_id: int, actor_id: int, text: str) -> RequestNote:
        actor = self.identity.get_actor(actor_id)
        request = self.get_request(request_id)
        allowed = actor.is_admin or actor.id == request.customer_id or \
            (actor.is_mechanic and actor.id == request.provider_id)
        if not allowed:
            raise UnauthorizedError("You cannot add notes to this request", actor_id=actor_id)

        text = (text or '').strip()
        if not text:
            raise DispatchValidationError("Note text is required", field='text')
        if len(text) > RequestNote.MAX_LENGTH:
            raise DispatchValidationError(f"Note cannot exceed {RequestNote.MAX_LENGTH} characters", field='text')

        note = RequestNote(request_id=request.id, added_by_id=actor.id, text=text)
        db.session.add(note)
        db.session.commit()
        return note

    def view(self, request_id: int, actor_id: int):
        """Role projection of a request for one viewer"""
        actor = self.identity.get_actor(actor_id)
        request = self.get_request(request_id)
        position = (actor.latitude, actor.longitude) if actor.has_position else None
        return project_request(request, actor.id, actor.role, viewer_position=position)

    # ========== Conversations ==========

    def get_or_create_conversation(self, request_id: int, actor_id: Optional[int] = None):
        if actor_id is not None:
            actor = self.identity.get_actor(actor_id)
            request = self.get_request(request_id)
            bound = request
            if request.status == ServiceRequest.STATUS_CANCELLED:
                # A cancelled request is unbound; its conversation still names both parties
                bound = Conversation.query.filter_by(request_id=request_id).first() or request
            if not actor.is_admin and not bound.is_participant(actor.id):
                raise UnauthorizedError("Not a participant in this request", actor_id=actor_id)
        return self.binder.bind_conversation(request_id)

    def post_message(self, conversation_id: int, sender_id: int, body: str,
                     message_type: str = 'text', file_url: Optional[str] = None):
        self.identity.get_actor(sender_id)
        message = self.binder.post_message(conversation_id, sender_id, body, message_type, file_url)
        conversation = message.conversation
        recipient = conversation.provider_id if sender_id == conversation.customer_id else conversation.customer_id
        self.event_bus.emit(events.MESSAGE_POSTED, conversation.request_id, audience=(recipient,),
                            payload={'conversation_id': conversation.id, 'message_id': message.id})
        return message

    def mark_read(self, conversation_id: int, actor_id: int) -> int:
        self.identity.get_actor(actor_id)
        return self.binder.mark_read(conversation_id, actor_id)

    # ========== Settlement ==========

    def initiate_settlement(self, request_id: int, actor_id: Optional[int] = None):
        return self._require_settlement().initiate(request_id, actor_id)

    def verify_settlement(self, payment_id: int, gateway_callback: dict):
        return self._require_settlement().verify(payment_id, gateway_callback)

    def refund(self, payment_id: int, actor_id: int, reason: str, amount: Optional[float] = None):
        return self._require_settlement().refund(payment_id, actor_id, reason, amount)

    def _require_settlement(self) -> SettlementCoordinator:
        if self.settlement is None:
            raise PaymentGatewayError("Settlement is not configured")
        return self.settlement

    def _settle_after_completion(self, request_id: int) -> None:
        if self.settlement is None:
            return
        try:
            order = self.settlement.initiate(request_id)
            logger.info(f"Settlement opened for request {request_id}: payment {order.payment_id}")
        except DuplicateSettlementError:
            # Already logged at warning by the coordinator
            db.session.rollback()
        except PaymentGatewayError as e:
            db.session.rollback()
            logger.error(f"Automatic settlement for request {request_id} failed: {e}")
        except DispatchDomainError as e:
            db.session.rollback()
            logger.error(f"Automatic settlement for request {request_id} rejected: {e}")

    # ========== Reviews ==========

    def create_review(self, request_id: int, actor_id: int, data: dict):
        return self.reviews.create_review(request_id, actor_id, data)

    def respond_to_review(self, review_id: int, actor_id: int, response: str):
        return self.reviews.respond(review_id, actor_id, response)


def build_engine(app) -> DispatchEngine:
    """Build the engine from app config; PAYMENT_GATEWAY_CLIENT overrides the Razorpay client"""
    config = app.config
    event_bus = DispatchEventBus()
    identity = IdentityService()

    gateway = config.get('PAYMENT_GATEWAY_CLIENT') or RazorpayGatewayClient.from_config(config)
    settlement = SettlementCoordinator(
        gateway,
        identity,
        fees=FeeSchedule.from_config(config),
        currency=config.get('PAYMENT_CURRENCY', 'INR'),
        key_id=config.get('RAZORPAY_KEY_ID', ''),
        event_bus=event_bus,
    )
    finder = CandidateFinder(
        UserPositionSource(),
        max_radius_km=config.get('BROADCAST_MAX_RADIUS_KM', CandidateFinder.MAX_RADIUS_KM),
        default_limit=config.get('BROADCAST_MAX_CANDIDATES', CandidateFinder.DEFAULT_LIMIT),
    )

    return DispatchEngine(
        identity=identity,
        candidate_finder=finder,
        settlement=settlement,
        event_bus=event_bus,
        default_radius_km=config.get('BROADCAST_DEFAULT_RADIUS_KM', 10.0),
        max_radius_km=config.get('BROADCAST_MAX_RADIUS_KM', CandidateFinder.MAX_RADIUS_KM),
    )
