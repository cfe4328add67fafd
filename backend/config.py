import os


def _csv(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///stopthebus.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = _csv(os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173',
    ))
    # Round cap per room; 0 means unlimited
    MAX_ROUNDS = int(os.environ.get('MAX_ROUNDS', '10'))
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '4'))
    ROOM_CODE_MAX_ATTEMPTS = int(os.environ.get('ROOM_CODE_MAX_ATTEMPTS', '50'))
    MAX_NAME_LENGTH = int(os.environ.get('MAX_NAME_LENGTH', '32'))
    # Write-behind interval for room snapshots (seconds)
    SNAPSHOT_INTERVAL_SEC = float(os.environ.get('SNAPSHOT_INTERVAL_SEC', '2'))
    # Optional: auto-complete a round after this many seconds. 0 disables.
    ROUND_DURATION_SEC = float(os.environ.get('ROUND_DURATION_SEC', '0'))
    # Optional: evict rooms with no subscribers after this many seconds. 0 disables.
    ROOM_IDLE_TIMEOUT_SEC = float(os.environ.get('ROOM_IDLE_TIMEOUT_SEC', '0'))
    # Suggestions offered to the host in the lobby
    DEFAULT_CATEGORIES = _csv(os.environ.get(
        'DEFAULT_CATEGORIES',
        'Boy,Girl,Country,Food,Colour,Car,Movie / TV Show',
    ))
