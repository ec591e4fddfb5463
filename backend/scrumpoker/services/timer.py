import logging
from typing import Callable, List, Optional

from scrumpoker import protocol
from scrumpoker.protocol import Notice


class TimerService:
    """Per-room discussion countdown.

    - One countdown per room; the room's timer generation identifies it
    - ``start`` replaces a running countdown, ``stop`` cancels it
    - A background task ticks every ``tick_seconds`` and exits as soon as
      its generation is stale (stopped, replaced, completed, room empty)
    - Ticks broadcast only every ``broadcast_interval`` seconds and on finish
    """

    def __init__(
        self,
        store,
        broadcaster,
        start_task: Optional[Callable] = None,
        sleep: Optional[Callable[[float], None]] = None,
        tick_seconds: float = 1.0,
        broadcast_interval: int = 30,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        # No start_task means ticks are driven by the caller (tests, CLI)
        self._start_task = start_task
        self._sleep = sleep
        self.tick_seconds = tick_seconds
        self.broadcast_interval = max(1, int(broadcast_interval))
        self.logger = logger or logging.getLogger(__name__)

    def toggle(self, room_code: str, duration: Optional[int] = None, by: Optional[str] = None) -> List[Notice]:
        with self.store.lock:
            room = self.store.get(room_code)
            if room.timer.active:
                return self.stop(room_code, by=by)
            return self.start(room_code, duration or room.timer.duration, by=by)

    def start(self, room_code: str, duration: int, by: Optional[str] = None) -> List[Notice]:
        with self.store.lock:
            room, generation = self.store.start_timer(room_code, int(duration))
            notice = protocol.timer_updated(room.id, room.timer, by)
        self.logger.info(f"[timer-set] room={room.id} duration={duration}s generation={generation} by={by}")
        self._schedule(room.id, generation)
        return [notice]

    def stop(self, room_code: str, by: Optional[str] = None) -> List[Notice]:
        with self.store.lock:
            room = self.store.stop_timer(room_code)
            notice = protocol.timer_updated(room.id, room.timer, by)
        self.logger.info(f"[timer-stop] room={room.id} by={by}")
        return [notice]

    def tick(self, room_code: str, generation: Optional[int] = None) -> List[Notice]:
        """Apply one tick and deliver whatever it needs to broadcast."""
        with self.store.lock:
            if generation is None:
                generation = self.store.get(room_code).timer.generation
            outcome = self.store.tick_timer(room_code, generation)
            if outcome is None:
                return []
            notices = self._notices_for(room_code, outcome)
            self.broadcaster.deliver(notices)
            return notices

    def _notices_for(self, room_code, outcome) -> List[Notice]:
        room = self.store.get(room_code)
        if outcome.finished:
            return [protocol.timer_updated(room.id, room.timer), protocol.timer_finished(room.id)]
        if outcome.remaining % self.broadcast_interval == 0:
            return [protocol.timer_updated(room.id, room.timer)]
        return []

    def _schedule(self, room_code: str, generation: int) -> None:
        if self._start_task is None:
            return
        self._start_task(self._run, room_code, generation)

    def _run(self, room_code: str, generation: int) -> None:
        while True:
            self._sleep(self.tick_seconds)
            with self.store.lock:
                outcome = self.store.tick_timer(room_code, generation)
                if outcome is None:
                    self.logger.info(f"[timer-abort] room={room_code} generation={generation} stale")
                    return
                self.broadcaster.deliver(self._notices_for(room_code, outcome))
            if outcome.finished:
                self.logger.info(f"[timer-finish] room={room_code} generation={generation}")
                return
