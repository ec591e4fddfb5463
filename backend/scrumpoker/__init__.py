import time

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException

from config import Config

__version__ = '1.0.0'

socketio = SocketIO(async_mode=None)


class ScrumPokerState:
    """Room store, session registry and the services wired around them."""

    def __init__(self, rooms, sessions, team_defaults, timers, dispatcher):
        self.rooms = rooms
        self.sessions = sessions
        self.team_defaults = team_defaults
        self.timers = timers
        self.dispatcher = dispatcher
        self.started_at = time.time()

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS') or []
    CORS(flask_app, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from scrumpoker.dispatcher import RoomEventDispatcher
    from scrumpoker.errors import PersistenceError
    from scrumpoker.rooms import RoomStore
    from scrumpoker.services.housekeeping import flush_team_defaults, start_housekeeping, sweep_rooms
    from scrumpoker.services.team_defaults import TeamDefaultsStore
    from scrumpoker.services.timer import TimerService
    from scrumpoker.sessions import SessionRegistry
    from scrumpoker.socketio_events import SocketIOBroadcaster, register_socketio_handlers

    cfg = flask_app.config
    team_defaults = TeamDefaultsStore(cfg.get('TEAM_DEFAULTS_PATH'))
    try:
        loaded = team_defaults.load()
        flask_app.logger.info(f"[team-defaults] loaded teams={loaded}")
    except PersistenceError as exc:
        flask_app.logger.warning(f"[team-defaults] starting empty: {exc.message}")

    rooms = RoomStore(
        defaults_lookup=team_defaults.get,
        default_timer_duration=int(cfg.get('DEFAULT_TIMER_DURATION_SEC', 300)),
        observers_can_vote=cfg.get('OBSERVERS_CAN_VOTE', True),
        strict_estimation_types=cfg.get('STRICT_ESTIMATION_TYPES', False),
    )
    namespace = cfg.get('SOCKETIO_NAMESPACE', '/ws')
    broadcaster = SocketIOBroadcaster(socketio, namespace)

    # Background ticking is disabled in tests unless explicitly enabled
    run_background = not cfg.get('TESTING') or cfg.get('ENABLE_SCHEDULER_IN_TESTS')
    timers = TimerService(
        rooms,
        broadcaster,
        start_task=socketio.start_background_task if run_background else None,
        sleep=socketio.sleep,
        tick_seconds=float(cfg.get('TIMER_TICK_SEC', 1)),
        broadcast_interval=int(cfg.get('TIMER_BROADCAST_INTERVAL_SEC', 30)),
        logger=flask_app.logger,
    )
    sessions = SessionRegistry()
    dispatcher = RoomEventDispatcher(rooms, sessions, timers, broadcaster, logger=flask_app.logger)
    state = ScrumPokerState(rooms, sessions, team_defaults, timers, dispatcher)
    flask_app.extensions['scrumpoker'] = state

    from scrumpoker.main import main
    flask_app.register_blueprint(main)

    from scrumpoker.api.rooms import rooms_api
    flask_app.register_blueprint(rooms_api, url_prefix='/api')

    from scrumpoker.api.teams import teams_api
    flask_app.register_blueprint(teams_api, url_prefix='/api/teams')

    register_socketio_handlers(namespace)

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        if isinstance(exc, HTTPException):
            return jsonify({'error': exc.description}), exc.code
        flask_app.logger.exception('[http-error] unhandled exception')
        return jsonify({'error': 'Something went wrong!'}), 500

    @click.command('sweep-rooms')
    def sweep_rooms_command():
        """Evicts empty rooms that have been idle too long."""
        removed = sweep_rooms(flask_app, state)
        click.echo(f'Removed {len(removed)} room(s)')

    @click.command('save-team-defaults')
    def save_team_defaults_command():
        """Writes team defaults to disk now."""
        if flush_team_defaults(flask_app, state, force=True):
            click.echo(f'Team defaults saved to {team_defaults.path}')
        else:
            click.echo('Team defaults were not saved')

    flask_app.cli.add_command(sweep_rooms_command)
    flask_app.cli.add_command(save_team_defaults_command)

    if run_background:
        start_housekeeping(flask_app, state, socketio)

    return flask_app
