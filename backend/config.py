import os


def _flag(name, default='0'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def engine_options(database_uri, timeout):
    """Every persistence call gets a bounded wait instead of hanging."""
    if database_uri.startswith('sqlite'):
        return {'connect_args': {'timeout': timeout}}
    return {'pool_timeout': timeout, 'pool_pre_ping': True}


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///rendezvous.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STORE_TIMEOUT_SEC = int(os.environ.get('STORE_TIMEOUT_SEC', '5'))
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI, STORE_TIMEOUT_SEC)

    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '5000'))
    # Socket.IO namespace for live participants
    LIVE_NAMESPACE = os.environ.get('LIVE_NAMESPACE', '/ws')
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # records kept in memory for GET /api/logs
    LOG_BUFFER_SIZE = int(os.environ.get('LOG_BUFFER_SIZE', '500'))

    # Game rules
    PROXIMITY_THRESHOLD_M = float(os.environ.get('PROXIMITY_THRESHOLD_M', '100'))
    SCAN_REQUIRES_PROXIMITY = _flag('SCAN_REQUIRES_PROXIMITY')
    VALIDATE_COORDINATE_RANGES = _flag('VALIDATE_COORDINATE_RANGES', '1')

    # Background timers (seconds)
    SELECTION_INTERVAL_SEC = int(os.environ.get('SELECTION_INTERVAL_SEC', '300'))
    SELECTION_INITIAL_DELAY_SEC = int(os.environ.get('SELECTION_INITIAL_DELAY_SEC', '5'))
    HEARTBEAT_INTERVAL_SEC = int(os.environ.get('HEARTBEAT_INTERVAL_SEC', '30'))
    CLEANUP_INTERVAL_SEC = int(os.environ.get('CLEANUP_INTERVAL_SEC', '60'))
    # 0 disables the idle check; idleness counts inbound messages only, pings
    # sent by the server do not keep a silent client alive
    CONNECTION_IDLE_TIMEOUT_SEC = int(os.environ.get('CONNECTION_IDLE_TIMEOUT_SEC', '0'))
