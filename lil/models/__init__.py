from .user import User
from .identity import Identity
from .short_link import ShortLink

__all__ = ['User', 'Identity', 'ShortLink']
