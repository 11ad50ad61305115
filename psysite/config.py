import os
import tempfile

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_vercel_runtime():
    return bool(os.environ.get('VERCEL') or os.environ.get('VERCEL_ENV'))


def _is_managed_runtime():
    return bool(
        os.environ.get('RAILWAY_ENVIRONMENT')
        or os.environ.get('RENDER')
        or _is_vercel_runtime()
    )


def _is_production_runtime():
    flask_env = (os.environ.get('FLASK_ENV') or '').strip().lower()
    railway_env = (os.environ.get('RAILWAY_ENVIRONMENT') or '').strip().lower()
    vercel_env = (os.environ.get('VERCEL_ENV') or '').strip().lower()
    return flask_env == 'production' or railway_env == 'production' or vercel_env == 'production'


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    if _is_vercel_runtime():
        return 'sqlite:////tmp/psysite.db'
    return 'sqlite:///' + os.path.join(basedir, 'psysite.db')


def _database_engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    return {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = (os.environ.get('UPLOAD_FOLDER') or '').strip() or (
        os.path.join(tempfile.gettempdir(), 'uploads') if _is_vercel_runtime() else os.path.join(basedir, 'uploads')
    )
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024  # 8MB max upload
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(os.environ.get('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp'}
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(
        os.environ.get('SESSION_COOKIE_SECURE'),
        ((os.environ.get('PREFERRED_URL_SCHEME') or '').lower() == 'https') or _is_production_runtime(),
    )
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_managed_runtime())
    PREFERRED_URL_SCHEME = os.environ.get('PREFERRED_URL_SCHEME') or ('https' if SESSION_COOKIE_SECURE else 'http')
    ASSET_VERSION = (os.environ.get('ASSET_VERSION') or '').strip()
    HSTS_ENABLED = _as_bool(os.environ.get('HSTS_ENABLED'), True)
    HSTS_MAX_AGE = _as_int(os.environ.get('HSTS_MAX_AGE'), 31536000)
    HSTS_INCLUDE_SUBDOMAINS = _as_bool(os.environ.get('HSTS_INCLUDE_SUBDOMAINS'), True)

    # Configuration store. Leave CONFIG_STORE_URL empty to use the local database.
    CONFIG_STORE_URL = (os.environ.get('CONFIG_STORE_URL') or '').rstrip('/')
    CONFIG_STORE_TOKEN = (os.environ.get('CONFIG_STORE_TOKEN') or '').strip()
    CONFIG_STORE_TIMEOUT_SECONDS = max(1.0, _as_float(os.environ.get('CONFIG_STORE_TIMEOUT_SECONDS'), 10.0))
    CONFIG_API_TOKEN = (os.environ.get('CONFIG_API_TOKEN') or '').strip()
    CONTACT_SETTINGS_ID = max(1, _as_int(os.environ.get('CONTACT_SETTINGS_ID'), 1))

    # Drag-to-reorder activation thresholds handed to the admin script.
    DRAG_POINTER_DISTANCE_PX = max(0, _as_int(os.environ.get('DRAG_POINTER_DISTANCE_PX'), 8))
    DRAG_TOUCH_DELAY_MS = max(0, _as_int(os.environ.get('DRAG_TOUCH_DELAY_MS'), 250))
    DRAG_TOUCH_TOLERANCE_PX = max(0, _as_int(os.environ.get('DRAG_TOUCH_TOLERANCE_PX'), 5))

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
