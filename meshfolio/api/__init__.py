"""API blueprints for Meshfolio."""

from meshfolio.api.thumbnails import thumbnails_bp

__all__ = ['thumbnails_bp']
