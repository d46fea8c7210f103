"""
Conversation Binder

Opens exactly one private conversation per service request, between the
request's customer and its assigned provider, and carries the messages
posted to it.

Creation races are settled by the unique constraint on
conversations.request_id: the loser rolls back and reads the winner's row.
A reject closes the conversation; the next claim hands it to the new provider.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from roadside import db
from roadside.buisness.dispatching.errors import (
    ConversationClosedError,
    DispatchConsistencyError,
    DispatchValidationError,
    NotFoundError,
    UnauthorizedError,
)
from roadside.data.conversations.conversation import Conversation
from roadside.data.conversations.message import Message
from roadside.data.dispatching.service_request import ServiceRequest
from roadside.logger import get_logger

logger = get_logger("roadside.domain.conversations.binder")


class ConversationBinder:

    def bind_conversation(self, request_id: int) -> Conversation:
        """
        Return the conversation for a request, creating it on first call.

        Raises:
            NotFoundError: If the request does not exist
            DispatchConsistencyError: If the request has no assigned provider
        """
        existing = Conversation.query.filter_by(request_id=request_id).first()
        if existing is not None:
            return self._follow_assignment(existing)

        request = db.session.get(ServiceRequest, request_id)
        if request is None:
            raise NotFoundError('ServiceRequest', request_id)
        if request.provider_id is None:
            raise DispatchConsistencyError(
                f"Service request {request_id} has no assigned provider; cannot open a conversation"
            )

        conversation = Conversation(
            request_id=request.id,
            customer_id=request.customer_id,
            provider_id=request.provider_id,
            is_active=request.status != ServiceRequest.STATUS_CANCELLED,
        )
        db.session.add(conversation)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.debug(f"Conversation for request {request_id} created concurrently; using existing row")
            conversation = Conversation.query.filter_by(request_id=request_id).first()
            if conversation is None:
                raise
            return conversation

        logger.info(f"Opened conversation {conversation.id} for request {request_id}")
        return conversation

    def _follow_assignment(self, conversation: Conversation) -> Conversation:
        """Hand a conversation released by a reject over to the request's new provider"""
        request = conversation.request
        if request.provider_id is None or request.provider_id == conversation.provider_id:
            return conversation

        previous = conversation.provider_id
        conversation.provider_id = request.provider_id
        conversation.is_active = True
        db.session.commit()
        logger.info(f"Conversation {conversation.id} handed from provider {previous} to {request.provider_id}")
        return conversation

    def get_conversation(self, conversation_id: int) -> Conversation:
        conversation = db.session.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError('Conversation', conversation_id)
        return conversation

    def get_for_participant(self, conversation_id: int, actor_id: int, actor_role: Optional[str] = None) -> Conversation:
        """Load a conversation the actor may read (participants and admins)"""
        conversation = self.get_conversation(conversation_id)
        if actor_role != 'admin' and not conversation.is_participant(actor_id):
            raise UnauthorizedError("Not a participant in this conversation", actor_id=actor_id)
        return conversation

    def post_message(self, conversation_id: int, sender_id: int, body: str,
                     message_type: str = Message.TYPE_TEXT, file_url: Optional[str] = None) -> Message:
        """
        Append a message to an active conversation.

        Raises:
            UnauthorizedError: If the sender is not a participant
            ConversationClosedError: If the conversation was deactivated
            DispatchValidationError: If the body or type is invalid
        """
        conversation = self.get_conversation(conversation_id)
        if not conversation.is_participant(sender_id):
            raise UnauthorizedError("Only conversation participants can post messages", actor_id=sender_id)
        if not conversation.is_active:
            raise ConversationClosedError(f"Conversation {conversation_id} is closed")

        body = (body or '').strip()
        if not body:
            raise DispatchValidationError("Message body cannot be empty", field='body')
        if len(body) > Message.MAX_LENGTH:
            raise DispatchValidationError(
                f"Message cannot exceed {Message.MAX_LENGTH} characters", field='body'
            )
        if message_type not in Message.MESSAGE_TYPES:
            raise DispatchValidationError(f"Invalid message type: {message_type}", field='message_type')
        if message_type != Message.TYPE_TEXT and not file_url:
            raise DispatchValidationError("file_url is required for image and file messages", field='file_url')

        now = datetime.utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            body=body,
            message_type=message_type,
            file_url=file_url,
            created_at=now,
        )
        db.session.add(message)
        conversation.last_message_at = now
        db.session.commit()
        return message

    def mark_read(self, conversation_id: int, actor_id: int) -> int:
        """
        Mark every unread message not sent by the actor as read.

        Returns:
            int: Number of messages marked
        """
        conversation = self.get_conversation(conversation_id)
        if not conversation.is_participant(actor_id):
            raise UnauthorizedError("Not a participant in this conversation", actor_id=actor_id)

        result = db.session.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.sender_id != actor_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount

    def list_messages(self, conversation_id: int, after_id: Optional[int] = None, limit: int = 50) -> List[Message]:
        query = Message.query.filter(Message.conversation_id == conversation_id)
        if after_id is not None:
            query = query.filter(Message.id > after_id)
        return query.order_by(Message.id.asc()).limit(limit).all()

    def unread_count(self, conversation_id: int, actor_id: int) -> int:
        return Message.query.filter(
            Message.conversation_id == conversation_id,
            Message.sender_id != actor_id,
            Message.is_read.is_(False),
        ).count()

    def deactivate_for_request(self, request_id: int, commit: bool = True) -> Optional[Conversation]:
        """Close the request's conversation, if it has one. Never deletes."""
        conversation = Conversation.query.filter_by(request_id=request_id).first()
        if conversation is None or not conversation.is_active:
            return conversation
        conversation.is_active = False
        if commit:
            db.session.commit()
        logger.info(f"Deactivated conversation {conversation.id} for request {request_id}")
        return conversation
