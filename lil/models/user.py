from datetime import datetime
from lil import db
from lil.errors import LilError, INVALID


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    # Linking key for OAuth identities; intentionally not unique
    email = db.Column(db.String(255), nullable=True, index=True)
    # Set only from a provider that verified the address; cleared when it changes
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    # Random key used by API clients (Authorization: Bearer)
    api_key = db.Column(db.String(64), unique=True, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    identities = db.relationship('Identity', backref='user', lazy='dynamic',
                                 order_by='Identity.id', cascade='all, delete-orphan')
    short_links = db.relationship('ShortLink', backref='owner', lazy='dynamic',
                                  order_by='ShortLink.id', cascade='all, delete-orphan')

    @property
    def avatar_url(self):
        """First avatar found across the user's identities."""
        for identity in self.identities:
            if identity.avatar_url:
                return identity.avatar_url
        return None

    def validate(self):
        """Basic field validation, run before every write."""
        if not self.name:
            raise LilError(INVALID, 'User name required.')

    def to_dict(self, include_sensitive=False):
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'email_verified': self.email_verified,
            'avatar_url': self.avatar_url,
            'identities': [i.to_dict() for i in self.identities],
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

        if include_sensitive:
            data['api_key'] = self.api_key

        return data

    def __repr__(self):
        return f'<User {self.id} {self.name}>'
