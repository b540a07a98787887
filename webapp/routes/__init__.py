"""Webapp routes package.

Available Blueprints:
- auth_bp: /api/auth/*, /api/guest/* endpoints
- snippets_bp: /api/snippets endpoints
- organize_bp: /api/folders, /api/categories endpoints
- media_bp: /api/media endpoints (PIN-gated)
- media_auth_bp: /api/media-auth endpoints
- recycle_bin_bp: /api/recycle-bin endpoints
"""

from webapp.routes.auth_routes import auth_bp
from webapp.routes.media_auth_routes import media_auth_bp
from webapp.routes.media_routes import media_bp
from webapp.routes.organize_routes import organize_bp
from webapp.routes.recycle_bin_routes import recycle_bin_bp
from webapp.routes.snippets_routes import snippets_bp

__all__ = [
    "auth_bp",
    "media_auth_bp",
    "media_bp",
    "organize_bp",
    "recycle_bin_bp",
    "snippets_bp",
]
