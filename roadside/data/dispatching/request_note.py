from roadside import db
from datetime import datetime
from roadside.buisness.core.data_insertion_mixin import DataInsertionMixin


class RequestNote(db.Model, DataInsertionMixin):
    __tablename__ = 'request_notes'

    MAX_LENGTH = 500

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id'), nullable=False, index=True)
    added_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    text = db.Column(db.String(MAX_LENGTH), nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    added_by = db.relationship('User')
