"""
ReviewManager - Customer reviews of completed service requests

One review per request, written by the request's customer once the job is
completed. After submission only the admin response fields change.
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from roadside import db
from roadside.buisness.dispatching import events
from roadside.buisness.dispatching.errors import (
    DispatchValidationError,
    DuplicateReviewError,
    NotFoundError,
    ReviewNotAllowedError,
    UnauthorizedError,
)
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.data.core.user_info.user import User
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.data.reviews.review import Review
from roadside.logger import get_logger

if TYPE_CHECKING:
    from roadside.buisness.dispatching.events import DispatchEventBus
    from roadside.buisness.dispatching.identity import IdentityService

logger = get_logger("roadside.domain.reviews.manager")

DETAILED_RATINGS = ('service_quality', 'timeliness', 'professionalism')


class ReviewManager:

    def __init__(self, identity: 'IdentityService', event_bus: Optional['DispatchEventBus'] = None):
        self.identity = identity
        self.event_bus = event_bus

    def create_review(self, request_id: int, actor_id: int, data: dict) -> Review:
        """
        Args:
            request_id: Completed service request
            actor_id: The request's customer
            data: rating, comment, service_quality, timeliness, professionalism,
                would_recommend, tags, is_public

        Raises:
            ReviewNotAllowedError: Request not completed
            DuplicateReviewError: Request already reviewed
        """
        actor = self.identity.get_actor(actor_id)
        request = db.session.get(ServiceRequest, request_id)
        if request is None:
            raise NotFoundError('ServiceRequest', request_id)
        if request.customer_id != actor.id:
            raise UnauthorizedError("Only the customer can review this request", actor_id=actor_id)
        if request.status != RequestStateMachine.COMPLETED:
            raise ReviewNotAllowedError(f"Service request {request_id} is {request.status}; only completed requests can be reviewed")
        if Review.query.filter_by(request_id=request_id).first() is not None:
            raise DuplicateReviewError(f"Service request {request_id} has already been reviewed", request_id=request_id)

        fields = self._validate(data or {})

        review = Review(
            request_id=request.id,
            customer_id=request.customer_id,
            provider_id=request.provider_id,
            **fields,
        )
        db.session.add(review)

        provider = db.session.get(User, request.provider_id)
        if provider is not None:
            provider.update_rating(review.rating)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateReviewError(f"Service request {request_id} has already been reviewed", request_id=request_id)

        logger.info(f"Review {review.id} created for request {request_id} (rating {review.rating})")
        if self.event_bus is not None:
            self.event_bus.emit(
                events.REVIEW_CREATED, request_id,
                audience=(request.provider_id,),
                payload={'review_id': review.id, 'rating': review.rating},
            )
        return review

    def respond(self, review_id: int, actor_id: int, response: str) -> Review:
        """Attach the admin response; the only post-submission edit allowed"""
        actor = self.identity.get_actor(actor_id)
        if not actor.is_admin:
            raise UnauthorizedError("Only admins can respond to reviews", actor_id=actor_id)

        review = db.session.get(Review, review_id)
        if review is None:
            raise NotFoundError('Review', review_id)

        response = (response or '').strip()
        if not response:
            raise DispatchValidationError("Response cannot be empty", field='response')
        if len(response) > Review.MAX_COMMENT_LENGTH:
            raise DispatchValidationError(
                f"Response cannot exceed {Review.MAX_COMMENT_LENGTH} characters", field='response'
            )

        review.admin_response = response
        review.admin_responder_id = actor.id
        review.admin_responded_at = datetime.utcnow()
        db.session.commit()
        return review

    def _validate(self, data: dict) -> dict:
        fields = {}

        for name in ('rating',) + DETAILED_RATINGS:
            value = data.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
                raise DispatchValidationError(f"{name} must be an integer between 1 and 5", field=name)
            fields[name] = value

        # All three detailed ratings replace the overall rating with their average
        if all(name in fields for name in DETAILED_RATINGS):
            fields['rating'] = round(sum(fields[name] for name in DETAILED_RATINGS) / len(DETAILED_RATINGS))

        if 'rating' not in fields:
            raise DispatchValidationError("rating is required", field='rating')

        comment = data.get('comment')
        if comment is not None:
            comment = str(comment).strip()
            if len(comment) > Review.MAX_COMMENT_LENGTH:
                raise DispatchValidationError(
                    f"Comment cannot exceed {Review.MAX_COMMENT_LENGTH} characters", field='comment'
                )
            fields['comment'] = comment or None

        tags = data.get('tags') or []
        unknown = [t for t in tags if t not in Review.TAGS]
        if unknown:
            raise DispatchValidationError(f"Unknown tags: {', '.join(map(str, unknown))}", field='tags')
        fields['tags'] = list(dict.fromkeys(tags))

        if 'would_recommend' in data:
            fields['would_recommend'] = bool(data['would_recommend'])
        if 'is_public' in data:
            fields['is_public'] = bool(data['is_public'])

        return fields
