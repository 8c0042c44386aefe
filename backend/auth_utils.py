from functools import wraps
from flask import request, current_app
import jwt
from backend.app import db
from backend.errors import AuthorizationError
from backend.models import User


def generate_token(user_id):
    """Generate a JWT token for a user."""
    from datetime import datetime, timedelta, timezone
    payload = {
        'user_id': user_id,
        'exp': datetime.now(timezone.utc) + timedelta(
            hours=current_app.config.get('JWT_EXPIRATION_HOURS', 24)
        ),
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm='HS256')


def _normalize_bearer_token(raw_token):
    token = str(raw_token or '').strip()
    if token.startswith('Bearer '):
        token = token.split(' ', 1)[1].strip()
    return token


def _decode_user_from_token(token):
    normalized = _normalize_bearer_token(token)
    if not normalized:
        return None, 'Authentication required'
    try:
        payload = jwt.decode(
            normalized, current_app.config['SECRET_KEY'], algorithms=['HS256']
        )
        user = db.session.get(User, payload['user_id'])
        if not user:
            return None, 'User not found'
        return user, None
    except jwt.ExpiredSignatureError:
        return None, 'Token expired'
    except jwt.InvalidTokenError:
        return None, 'Invalid token'


def login_required(f):
    """Decorator to require authentication on a route."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get('Authorization', '')
        user, error = _decode_user_from_token(auth_header)
        if error:
            raise AuthorizationError(error, kind='unauthenticated', status_code=401)
        request.current_user = user
        return f(*args, **kwargs)
    return decorated


def host_required(f):
    """Decorator for ``/<event_id>/...`` routes: caller must host the event or be admin.

    Sets ``request.current_event`` for the view.
    """
    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        from backend.services.participant_pool import ensure_event_manager, get_event
        event = get_event(kwargs['event_id'])
        ensure_event_manager(event, request.current_user)
        request.current_event = event
        return f(*args, **kwargs)
    return decorated
