"""Route blueprints exposed via Flask."""

from .api import api_bp
from .auth import auth_bp
from .downloads import downloads_bp

__all__ = [
    "api_bp",
    "auth_bp",
    "downloads_bp",
]
