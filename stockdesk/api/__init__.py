"""Local JSON API for the web-view front end"""

from .main import create_app

__all__ = ["create_app"]
