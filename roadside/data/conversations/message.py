from roadside import db
from datetime import datetime
from roadside.buisness.core.data_insertion_mixin import DataInsertionMixin


class Message(db.Model, DataInsertionMixin):
    __tablename__ = 'messages'

    TYPE_TEXT = 'text'
    TYPE_IMAGE = 'image'
    TYPE_FILE = 'file'
    MESSAGE_TYPES = (TYPE_TEXT, TYPE_IMAGE, TYPE_FILE)
    MAX_LENGTH = 1000

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversations.id'), nullable=False)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    body = db.Column(db.String(MAX_LENGTH), nullable=False)
    message_type = db.Column(db.String(10), nullable=False, default=TYPE_TEXT)
    file_url = db.Column(db.String(500), nullable=True)
    # Only the read receipt ever changes after insert
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index('ix_messages_conversation_id', 'conversation_id', 'id'),
    )

    conversation = db.relationship('Conversation', back_populates='messages')
