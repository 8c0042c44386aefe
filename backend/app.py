import logging
from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from backend.config import config
from backend.errors import InsufficientDataError, MatchmakingError, ValidationError

db = SQLAlchemy()
socketio = SocketIO()

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _configure_logging(app):
    level_name = str(app.config.get('LOG_LEVEL') or 'INFO').upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    logging.getLogger('backend').setLevel(numeric_level)


def _register_error_handlers(app):
    @app.errorhandler(MatchmakingError)
    def _handle_matchmaking_error(error):
        db.session.rollback()
        if isinstance(error, (InsufficientDataError, ValidationError)):
            log = logger.info
        else:
            log = logger.warning
        log(
            '%s %s rejected: %s (%s) %s',
            request.method, request.path, error.kind, error.message, error.context,
        )
        return jsonify(error.to_dict()), error.status_code


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    _configure_logging(app)

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    @app.before_request
    def _enforce_origin_for_mutating_api_requests():
        if request.method in {'GET', 'HEAD', 'OPTIONS'}:
            return None
        if not request.path.startswith('/api/'):
            return None

        origin = str(request.headers.get('Origin') or '').strip()
        if not origin:
            return None

        if allowed_origins != '*' and origin not in allowed_origins:
            return jsonify({
                'status': 'error',
                'kind': 'forbidden',
                'message': 'Invalid request origin',
            }), 403
        return None

    _register_error_handlers(app)

    from backend.routes.matchmaking import matchmaking_bp

    app.register_blueprint(matchmaking_bp, url_prefix='/api/matchmaking')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'success', 'data': {'service': 'matchmaking'}})

    with app.app_context():
        from backend import models  # noqa: F401
        db.create_all()

    logger.info('Matchmaking service configured (%s)', config_name)
    return app
