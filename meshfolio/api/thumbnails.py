"""
Thumbnails API Blueprint.

Cache lookup for mesh thumbnails, job submission and progress polling.
"""

import logging
from flask import Blueprint, current_app, jsonify, request, send_file

from meshfolio.core.errors import StorageFailure
from meshfolio.core.paths import canonicalize_path, is_mesh_path
from meshfolio.core.thumbnails import find_thumbnail, thumbnail_path

logger = logging.getLogger(__name__)
thumbnails_bp = Blueprint('thumbnails', __name__)


def get_scheduler():
    return current_app.extensions['meshfolio.scheduler']


@thumbnails_bp.route('/thumbnails/status')
def api_thumbnail_status():
    """Get current thumbnail job progress."""
    scheduler = get_scheduler()
    return jsonify({
        **scheduler.snapshot().to_dict(),
        'queued': len(scheduler.queue),
        'capacity': scheduler.queue.capacity,
        'stats': scheduler.stats
    })


@thumbnails_bp.route('/thumbnails/enqueue', methods=['POST'])
def api_enqueue_thumbnail():
    """
    Queue a mesh for thumbnail rendering.

    Request body:
    - path: Mesh path (decorations such as extra slashes are fine)
    """
    data = request.get_json(silent=True)
    if not data or not data.get('path'):
        return jsonify({'error': 'No path provided'}), 400

    scheduler = get_scheduler()
    config = scheduler.config
    path = data['path']

    if not is_mesh_path(path):
        return jsonify({'error': 'Not an STL path', 'path': path}), 400

    canonical = canonicalize_path(path, config.MESH_DIR)
    queued = scheduler.enqueue(canonical)

    return jsonify({
        'path': canonical,
        'thumbnail': thumbnail_path(canonical, config.THUMBNAIL_DIR, config.MESH_DIR),
        'queued': queued
    }), 202


@thumbnails_bp.route('/thumbnails/scan', methods=['POST'])
def api_scan_thumbnails():
    """Queue every mesh that has no thumbnail yet."""
    counts = get_scheduler().enqueue_missing()
    return jsonify(counts), 202


@thumbnails_bp.route('/thumbnails/<path:mesh_path>')
def api_get_thumbnail(mesh_path: str):
    """
    Serve the cached thumbnail for a mesh.

    On a cache miss the mesh is queued (if it exists) and 404 is returned;
    the client simply polls again later.
    """
    scheduler = get_scheduler()
    storage = scheduler.storage
    config = scheduler.config

    if not is_mesh_path(mesh_path):
        return jsonify({'error': 'Not found'}), 404

    thumb = find_thumbnail(storage, mesh_path, config.THUMBNAIL_DIR, config.MESH_DIR)
    if thumb:
        return send_file(storage.local_path(thumb), mimetype='image/png', max_age=0)

    canonical = canonicalize_path(mesh_path, config.MESH_DIR)
    try:
        exists = storage.exists(canonical)
    except StorageFailure:
        exists = False

    job = scheduler.current_job
    if exists and canonical not in scheduler.queue and not (job and job.mesh_path == canonical):
        scheduler.enqueue(canonical)
        logger.debug(f"Thumbnail miss, queued {canonical}")

    return jsonify({'error': 'Not found'}), 404
