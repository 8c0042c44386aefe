import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _normalize_database_url(raw_url):
    if not raw_url:
        return raw_url
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql://', 1)
    return raw_url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_EXPIRATION_HOURS = _env_int('JWT_EXPIRATION_HOURS', 24)
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Matchmaking defaults, used when a request or event leaves them unset
    MATCHMAKING_DEFAULT_MAX_COURTS = _env_int('MATCHMAKING_DEFAULT_MAX_COURTS', 4)
    MATCHMAKING_DEFAULT_SKILL_TOLERANCE = _env_int('MATCHMAKING_DEFAULT_SKILL_TOLERANCE', 200)
    MATCHMAKING_MAX_COURTS_LIMIT = _env_int('MATCHMAKING_MAX_COURTS_LIMIT', 20)
    MATCHMAKING_MAX_SKILL_TOLERANCE = _env_int('MATCHMAKING_MAX_SKILL_TOLERANCE', 500)
    MATCHMAKING_SINGLES_DURATION_MINUTES = _env_int('MATCHMAKING_SINGLES_DURATION_MINUTES', 60)
    MATCHMAKING_DOUBLES_DURATION_MINUTES = _env_int('MATCHMAKING_DOUBLES_DURATION_MINUTES', 75)
    MATCHMAKING_BROADCAST_UPDATES = _env_bool('MATCHMAKING_BROADCAST_UPDATES', True)
    DEFAULT_SKILL_RATING = _env_int('DEFAULT_SKILL_RATING', 1000)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.environ.get(
            'DATABASE_URL',
            'sqlite:///' + os.path.join(basedir, '..', 'matchmaking_dev.db')
        )
    )


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    MATCHMAKING_BROADCAST_UPDATES = False


class ProductionConfig(BaseConfig):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get('DATABASE_URL'))


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
