from roadside import db
from flask_login import UserMixin
from datetime import datetime
from roadside.buisness.core.data_insertion_mixin import DataInsertionMixin


class User(UserMixin, DataInsertionMixin, db.Model):
    """
    Local projection of the external identity store.

    Registration and credentials live in the auth service; the engine only
    needs the role, activity flags, the provider position and rating.
    """
    __tablename__ = 'users'

    ROLE_CUSTOMER = 'customer'
    ROLE_MECHANIC = 'mechanic'
    ROLE_ADMIN = 'admin'
    ROLES = (ROLE_CUSTOMER, ROLE_MECHANIC, ROLE_ADMIN)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20), unique=True, nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_CUSTOMER)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Provider-only fields
    is_available = db.Column(db.Boolean, default=False, nullable=False)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    location_updated_at = db.Column(db.DateTime, nullable=True)
    rating = db.Column(db.Float, default=0.0, nullable=False)
    total_reviews = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_users_role_active', 'role', 'is_active'),
        db.Index('ix_users_lat_lng', 'latitude', 'longitude'),
    )

    @property
    def is_mechanic(self):
        return self.role == self.ROLE_MECHANIC

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN

    @property
    def has_position(self):
        return self.latitude is not None and self.longitude is not None

    def update_rating(self, new_rating):
        """Fold one more review score into the running average"""
        total = (self.rating or 0.0) * (self.total_reviews or 0) + new_rating
        self.total_reviews = (self.total_reviews or 0) + 1
        self.rating = round(total / self.total_reviews, 2)

    def __repr__(self):
        return f'<User {self.id} {self.role}>'
