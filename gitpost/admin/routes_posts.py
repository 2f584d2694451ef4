"""
Blog API — Post endpoints.

Blueprint: posts_bp
Prefix: /api/posts
Routes:
    GET    /api/posts                     # All readable posts, newest first
    GET    /api/posts/<post_id>           # One post record
    GET    /api/posts/<post_id>/document  # Content as an editor block document
    GET    /api/posts/<post_id>/preview   # Content as safe HTML + plain text
    POST   /api/posts                     # Create (multipart)
    PUT    /api/posts/<post_id>           # Update (multipart)
    DELETE /api/posts/<post_id>           # Delete post, its files and index entry

Multipart fields for POST/PUT:
    title, content        required (content may be replaced by ``document``)
    document              editor block document (JSON), encoded into content
    contentFiles          JSON list of inline media records
    filesToDelete         JSON list of attached files to remove (PUT only)
    files                 attached files
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from ..content.codec import decode_document, preview_text, render_preview
from ..models.requests import decode_create_form, decode_update_form
from . import helpers

posts_bp = Blueprint("posts", __name__)

logger = logging.getLogger(__name__)


# ── Reads ────────────────────────────────────────────────────────


@posts_bp.route("", methods=["GET"])
def list_posts():
    posts = helpers.sync_engine().list_posts()
    return jsonify({"success": True, "data": [p.to_record() for p in posts]})


@posts_bp.route("/<post_id>", methods=["GET"])
def get_post(post_id: str):
    post = helpers.sync_engine().get_post(post_id)
    return jsonify({"success": True, "data": post.to_record()})


@posts_bp.route("/<post_id>/document", methods=["GET"])
def get_document(post_id: str):
    post = helpers.sync_engine().get_post(post_id)
    return jsonify({
        "success": True,
        "data": decode_document(post.content, post.content_files),
    })


@posts_bp.route("/<post_id>/preview", methods=["GET"])
def get_preview(post_id: str):
    """Rendered preview; ``?limit=N`` truncates the plain text."""
    post = helpers.sync_engine().get_post(post_id)
    limit = request.args.get("limit", type=int)
    return jsonify({
        "success": True,
        "data": {
            "html": render_preview(post.content, post.content_files),
            "text": preview_text(post.content, limit=limit),
        },
    })


# ── Writes ───────────────────────────────────────────────────────


@posts_bp.route("", methods=["POST"])
def create_post():
    payload = decode_create_form(request.form, helpers.incoming_attachments())
    result = helpers.sync_engine().create(payload)
    return jsonify({
        "success": True,
        "filename": result.filename,
        "postId": result.post_id,
    })


@posts_bp.route("/<post_id>", methods=["PUT"])
def update_post(post_id: str):
    payload = decode_update_form(post_id, request.form, helpers.incoming_attachments())
    result = helpers.sync_engine().update(payload)
    return jsonify({
        "success": True,
        "message": "Post updated successfully",
        "errors": result.errors,
    })


@posts_bp.route("/<post_id>", methods=["DELETE"])
def delete_post(post_id: str):
    result = helpers.sync_engine().delete(post_id)
    message = "Post deleted successfully"
    if result.errors:
        message += f" ({len(result.errors)} file(s) could not be deleted)"
    return jsonify({
        "success": True,
        "message": message,
        "errors": result.errors,
    })
