# api/__init__.py
from api.server import app

__all__ = [
    "app",
]
