"""
Database Models

Key Models:
- User: identity record (email + password) used by Flask-Login
- Profile: per-user plan and Stripe linkage, written by the billing webhook
- AnalysisRecord: one row per completed exam analysis (insert only)
"""
from datetime import datetime, timezone
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from alia import db
from alia.domain import Plan, ProfileSnapshot


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_login_at = db.Column(db.DateTime(timezone=True))

    profile = db.relationship('Profile', back_populates='user', uselist=False, cascade='all, delete-orphan')
    analyses = db.relationship('AnalysisRecord', back_populates='user', lazy='dynamic', cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, db.ForeignKey('users.id'), primary_key=True)
    full_name = db.Column(db.String(255))
    plan = db.Column(db.Enum(Plan), default=Plan.FREE, nullable=False)
    stripe_customer_id = db.Column(db.String(100), unique=True, index=True)
    stripe_subscription_id = db.Column(db.String(100))
    stripe_plan_active = db.Column(db.Boolean, default=False)
    updated_at = db.Column(db.DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))

    user = db.relationship('User', back_populates='profile')

    def to_snapshot(self):
        """Read-only copy handed to the session machine"""
        return ProfileSnapshot(
            id=self.id,
            full_name=self.full_name or '',
            email=self.user.email if self.user else '',
            plan=self.plan,
            stripe_customer_id=self.stripe_customer_id,
            stripe_subscription_id=self.stripe_subscription_id,
            stripe_plan_active=bool(self.stripe_plan_active),
        )


class AnalysisRecord(db.Model):
    """Persisted exam analysis. Patient fields are flattened."""
    __tablename__ = 'analyses'

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    patient_name = db.Column(db.String(255), nullable=False)
    patient_age = db.Column(db.Integer, nullable=False)
    patient_symptoms = db.Column(db.Text)

    image_url = db.Column(db.String(1024), nullable=False)
    analysis_text = db.Column(db.Text, nullable=False)
    recommendations_text = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = db.relationship('User', back_populates='analyses')
