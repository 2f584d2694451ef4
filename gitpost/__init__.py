"""gitpost — a blog backend that stores posts and media in a GitHub repository."""

__version__ = "0.1.0"
