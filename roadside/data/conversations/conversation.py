from roadside import db
from roadside.data.core.user_created_base import UserCreatedBase


class Conversation(UserCreatedBase):
    """Private customer/provider channel for exactly one service request"""
    __tablename__ = 'conversations'

    request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id'), nullable=False)
    # Participants are fixed when the conversation is opened
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    provider_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_message_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint('request_id', name='uq_conversations_request_id'),
        db.Index('ix_conversations_participants', 'customer_id', 'provider_id'),
    )

    request = db.relationship('ServiceRequest')
    messages = db.relationship('Message', order_by='Message.id', back_populates='conversation', lazy='dynamic')

    def is_participant(self, user_id):
        return user_id in (self.customer_id, self.provider_id)

    def __repr__(self):
        return f'<Conversation {self.id} request={self.request_id}>'
