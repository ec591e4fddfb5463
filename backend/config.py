import os


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get('ALLOWED_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',')
        if origin.strip()
    ]
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    # Team defaults file (JSON) and how often it is flushed (seconds)
    TEAM_DEFAULTS_PATH = os.environ.get('TEAM_DEFAULTS_PATH', 'teamDefaults.json')
    TEAM_DEFAULTS_SAVE_INTERVAL_SEC = int(os.environ.get('TEAM_DEFAULTS_SAVE_INTERVAL_SEC', '300'))
    # Empty rooms idle longer than this are evicted by the sweep
    ROOM_MAX_IDLE_SEC = int(os.environ.get('ROOM_MAX_IDLE_SEC', str(24 * 60 * 60)))
    ROOM_SWEEP_INTERVAL_SEC = int(os.environ.get('ROOM_SWEEP_INTERVAL_SEC', '3600'))
    # Discussion timer
    DEFAULT_TIMER_DURATION_SEC = int(os.environ.get('DEFAULT_TIMER_DURATION_SEC', '300'))
    TIMER_TICK_SEC = float(os.environ.get('TIMER_TICK_SEC', '1'))
    # Ticks only broadcast when remaining is a multiple of this
    TIMER_BROADCAST_INTERVAL_SEC = int(os.environ.get('TIMER_BROADCAST_INTERVAL_SEC', '30'))
    # Trust knobs; permissive by default
    OBSERVERS_CAN_VOTE = _env_flag('OBSERVERS_CAN_VOTE', True)
    STRICT_ESTIMATION_TYPES = _env_flag('STRICT_ESTIMATION_TYPES', False)
