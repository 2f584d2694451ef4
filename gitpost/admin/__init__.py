"""HTTP surface — Flask application serving the blog editor API."""

from .server import create_app, run_server

__all__ = ["create_app", "run_server"]
