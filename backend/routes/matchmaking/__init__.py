"""Event matchmaking: blueprint registration."""
from flask import Blueprint

matchmaking_bp = Blueprint('matchmaking', __name__)

# Route modules register their routes by importing matchmaking_bp.
# These imports MUST come after matchmaking_bp is defined.
from backend.routes.matchmaking import generation, courts, lifecycle, overrides, views  # noqa: E402, F401
