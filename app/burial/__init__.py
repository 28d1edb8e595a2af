from flask import Blueprint

burial_bp = Blueprint("burial", __name__, url_prefix="/api")
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

from app.burial import admin_routes, routes  # noqa: E402,F401
