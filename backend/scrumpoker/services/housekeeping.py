from typing import List

from scrumpoker.errors import PersistenceError


def sweep_rooms(app, state) -> List[str]:
    """Evict stale empty rooms and forget any sessions still pointing at them."""
    with state.rooms.lock:
        removed = state.rooms.sweep(app.config.get('ROOM_MAX_IDLE_SEC', 24 * 60 * 60))
        for code in removed:
            for session in state.sessions.in_room(code):
                state.sessions.unbind(session.sid)
    for code in removed:
        app.logger.info(f"[sweep] removed empty room={code}")
    return removed


def flush_team_defaults(app, state, force: bool = False) -> bool:
    try:
        saved = state.team_defaults.save(force=force)
    except PersistenceError as exc:
        app.logger.error(f"[team-defaults] save failed: {exc.message}")
        return False
    if saved:
        app.logger.info(f"[team-defaults] saved teams={len(state.team_defaults)} path={state.team_defaults.path}")
    return saved


def start_housekeeping(app, state, sio) -> None:
    """Run the room sweep and the team defaults flush on their own schedules."""
    def _every(interval, job, name):
        while True:
            sio.sleep(interval)
            try:
                job(app, state)
            except Exception:
                app.logger.exception(f"[housekeeping] {name} failed")

    sweep_every = int(app.config.get('ROOM_SWEEP_INTERVAL_SEC', 3600))
    save_every = int(app.config.get('TEAM_DEFAULTS_SAVE_INTERVAL_SEC', 300))
    if sweep_every > 0:
        sio.start_background_task(_every, sweep_every, sweep_rooms, 'sweep')
    if save_every > 0:
        sio.start_background_task(_every, save_every, flush_team_defaults, 'team-defaults')
