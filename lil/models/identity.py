from datetime import datetime
from lil import db


class Identity(db.Model):
    """Binding between one local user and one external provider account."""
    __tablename__ = 'identities'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    provider = db.Column(db.String(50), nullable=False)  # e.g., 'github', 'google'
    provider_id = db.Column(db.String(255), nullable=False)  # provider-scoped subject id

    access_token = db.Column(db.Text, nullable=False, default='')
    refresh_token = db.Column(db.Text, nullable=False, default='')
    expiry = db.Column(db.DateTime, nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # One identity per external account
        db.UniqueConstraint('provider', 'provider_id', name='uq_identity_provider_subject'),
        # At most one identity per provider for a user
        db.UniqueConstraint('user_id', 'provider', name='uq_identity_user_provider'),
    )

    def to_dict(self):
        return {
            'provider': self.provider,
            'provider_id': self.provider_id,
            'avatar_url': self.avatar_url,
            'expiry': self.expiry.isoformat() if self.expiry else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Identity {self.provider} for User {self.user_id}>'
