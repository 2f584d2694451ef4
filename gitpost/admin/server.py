"""
Blog API Server — Flask application over the repository store.

Serves the editor's JSON API. Every remote effect goes through the store
passed to ``create_app``; without one, a GitHub store is built from the
environment and missing credentials fail at startup.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from ..config.loader import BlogConfig, load_config
from ..errors import GitPostError
from ..store.base import ContentStore
from ..store.github import GitHubContentStore
from ..store.layout import RepoLayout
from .routes_files import files_bp
from .routes_posts import posts_bp

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[ContentStore] = None,
    config: Optional[BlogConfig] = None,
) -> Flask:
    """
    Create the Flask application.

    Args:
        store: Content store to use (default: GitHub store from config)
        config: Configuration (default: loaded from the environment)

    Raises:
        ConfigError: no store given and credentials are incomplete
    """
    config = config or load_config()
    if store is None:
        store = GitHubContentStore(config.require())

    app = Flask(__name__)
    app.config["GITPOST_CONFIG"] = config
    app.config["GITPOST_STORE"] = store
    app.config["GITPOST_LAYOUT"] = RepoLayout.from_config(config)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_mb * 1024 * 1024

    # The editor runs on its own origin
    CORS(app)

    # ── Register Blueprints ───────────────────────────────────────
    app.register_blueprint(posts_bp, url_prefix="/api/posts")   # /api/posts/*
    app.register_blueprint(files_bp, url_prefix="/api/files")   # /api/files/*

    @app.route("/api/health")
    def health():
        return jsonify({
            "success": True,
            "repository": config.repository,
            "branch": config.github_branch,
        })

    # ── Error Handlers ────────────────────────────────────────────

    @app.errorhandler(GitPostError)
    def gitpost_error(e: GitPostError):
        """Known failures carry their own status code."""
        log_fn = logger.warning if e.status_code < 500 else logger.error
        log_fn(
            f"{request.method} {request.path} failed: {type(e).__name__}: {e.message}",
            extra={"path": e.path} if e.path else None,
        )
        return jsonify({"success": False, "error": e.message}), e.status_code

    @app.errorhandler(413)
    def request_entity_too_large(e):
        """Return JSON for 413 so the editor gets a parseable response."""
        return jsonify({
            "success": False,
            "error": f"Upload too large (max {config.max_upload_mb} MB)",
        }), 413

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_server_error(e):
        """Catch-all: JSON for any unhandled 500, details only in the log."""
        original = getattr(e, "original_exception", None) or e
        logger.error(
            f"Unhandled 500 on {request.method} {request.path}: {original}",
            exc_info=original if isinstance(original, BaseException) else None,
        )
        return jsonify({"success": False, "error": "Internal server error"}), 500

    # ── Request Logging ───────────────────────────────────────────

    @app.before_request
    def log_request_start():
        request._start_time = time.time()

    @app.after_request
    def log_request_end(response):
        """Log API requests with duration."""
        duration_ms = 0
        if hasattr(request, "_start_time"):
            duration_ms = int((time.time() - request._start_time) * 1000)

        if request.path.startswith("/api/"):
            log_fn = logger.debug if request.path == "/api/health" else logger.info
            log_fn(f"{request.method} {request.path} → {response.status_code} ({duration_ms}ms)")
        return response

    logger.info(f"Blog server initialized ({config.repository}@{config.github_branch})")

    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 5000,
    debug: bool = False,
) -> None:
    """
    Run the development server.

    Args:
        app: Application from ``create_app``
        host: Bind address
        port: Port to listen on
        debug: Enable Flask debug mode
    """
    # Our after_request logger already reports each request
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    print(f"""
  gitpost API running at http://{host}:{port}/api
  Repository: {app.config["GITPOST_CONFIG"].repository}
  Press Ctrl+C to stop
""")
    app.run(host=host, port=port, debug=debug, threaded=True, use_reloader=False)
