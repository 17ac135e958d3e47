from flask_bcrypt import Bcrypt
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager

from .models import db
from .registry import SegmentProviderRegistry

bcrypt = Bcrypt()
login_manager = LoginManager()
limiter = Limiter(key_func=get_remote_address)
segment_registry = SegmentProviderRegistry()

__all__ = ["bcrypt", "db", "limiter", "login_manager", "segment_registry"]
