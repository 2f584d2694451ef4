"""
Blog API — Repository file maintenance.

Blueprint: files_bp
Prefix: /api/files
Routes:
    DELETE /api/files/clean-orphaned-files   # Delete unreferenced media (?dry_run=1 to preview)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from . import helpers

files_bp = Blueprint("files", __name__)

logger = logging.getLogger(__name__)


@files_bp.route("/clean-orphaned-files", methods=["DELETE"])
def clean_orphaned_files():
    dry_run = request.args.get("dry_run", "").lower() in ("1", "true", "yes")
    result = helpers.orphan_collector().collect(dry_run=dry_run)
    return jsonify({
        "success": True,
        "message": result.message,
        "dryRun": dry_run,
        "deleted": result.deleted,
        "deletedCount": len(result.deleted),
        "errors": result.errors,
        "errorCount": len(result.errors),
    })
