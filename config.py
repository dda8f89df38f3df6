import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///livequiz.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma separated list of browser origins allowed for REST and Socket.IO
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
        ).split(',') if o.strip()
    ]
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    # Room identity
    PIN_LENGTH = int(os.environ.get('PIN_LENGTH', '6'))
    MAX_NAME_LENGTH = int(os.environ.get('MAX_NAME_LENGTH', '24'))
    # Scoring curve: fastest correct answer -> MAX_POINTS, answer at the deadline -> MIN_POINTS
    MAX_POINTS = int(os.environ.get('MAX_POINTS', '1000'))
    MIN_POINTS = int(os.environ.get('MIN_POINTS', '500'))
    # Room lifecycle timers (seconds)
    HOST_GRACE_SEC = float(os.environ.get('HOST_GRACE_SEC', '10'))
    ROOM_IDLE_TIMEOUT_SEC = float(os.environ.get('ROOM_IDLE_TIMEOUT_SEC', '600'))
    ENDED_ROOM_TTL_SEC = float(os.environ.get('ENDED_ROOM_TTL_SEC', '120'))
    # 0 disables the idle-room reaper
    REAPER_INTERVAL_SEC = float(os.environ.get('REAPER_INTERVAL_SEC', '30'))
