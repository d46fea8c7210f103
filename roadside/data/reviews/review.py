from roadside import db
from roadside.data.core.user_created_base import UserCreatedBase


class Review(UserCreatedBase):
    __tablename__ = 'reviews'

    TAGS = (
        'professional', 'punctual', 'friendly', 'skilled', 'fair_pricing',
        'quick_service', 'good_communication', 'clean_work',
        'unprofessional', 'late', 'rude', 'overpriced', 'poor_quality', 'slow_service',
    )
    MAX_COMMENT_LENGTH = 1000

    request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id'), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    provider_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.String(MAX_COMMENT_LENGTH), nullable=True)
    service_quality = db.Column(db.Integer, nullable=True)
    timeliness = db.Column(db.Integer, nullable=True)
    professionalism = db.Column(db.Integer, nullable=True)
    would_recommend = db.Column(db.Boolean, nullable=False, default=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    is_public = db.Column(db.Boolean, nullable=False, default=True)

    # The only fields that change after creation
    admin_response = db.Column(db.String(MAX_COMMENT_LENGTH), nullable=True)
    admin_responder_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    admin_responded_at = db.Column(db.DateTime, nullable=True)

    request = db.relationship('ServiceRequest')
