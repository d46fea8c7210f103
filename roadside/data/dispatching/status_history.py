from roadside import db
from datetime import datetime
from roadside.buisness.core.data_insertion_mixin import DataInsertionMixin


class StatusHistory(db.Model, DataInsertionMixin):
    """Append-only timeline of a service request's lifecycle"""
    __tablename__ = 'request_status_history'

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    event = db.Column(db.String(30), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    note = db.Column(db.String(500), nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    request = db.relationship('ServiceRequest', back_populates='history')

    def __repr__(self):
        return f'<StatusHistory {self.request_id} {self.event}->{self.status}>'
