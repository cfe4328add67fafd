import time
from typing import Dict, Set, Tuple

from stopthebus import socketio
from . import events
from .errors import RoomNotFound
from .events import Outcome
from .room import Phase


_scheduled_rounds: Set[Tuple[str, int]] = set()
_idle_deadlines: Dict[str, float] = {}


def dispatch(app, outcome: Outcome) -> None:
    """Publish an outcome's events and arm the timers they imply."""
    hub = app.extensions['room_hub']
    hub.publish(outcome.code, outcome.events)
    for event in outcome.events:
        if event.name == events.ROUND_STARTED:
            schedule_round_timer(app, outcome.code, event.payload['currentRound'])
        elif event.name == events.ROOM_CLOSED:
            hub.forget_room(outcome.code)


def _timers_disabled(app) -> bool:
    return bool(app.config.get('TESTING')) and not app.config.get('ENABLE_SCHEDULER_IN_TESTS')


def _run(app, worker) -> None:
    # Inline in tests for deterministic control flow
    if app.config.get('TESTING'):
        worker()
    else:
        socketio.start_background_task(worker)


def schedule_round_timer(app, code: str, round_number: int) -> None:
    """Auto-complete round ``round_number`` after ROUND_DURATION_SEC.

    - No-ops when the duration is 0 or in TESTING mode
    - One timer per (code, round)
    - The engine re-checks the round under the room lock, so a round the host
      already advanced is left alone
    """
    duration = float(app.config.get('ROUND_DURATION_SEC', 0))
    if duration <= 0 or _timers_disabled(app):
        return
    key = (code, round_number)
    if key in _scheduled_rounds:
        app.logger.info(f"[timer-skip] room={code} round={round_number} already scheduled")
        return
    _scheduled_rounds.add(key)
    app.logger.info(f"[timer-set] room={code} round={round_number} duration={duration}s")

    def _worker():
        socketio.sleep(duration)
        _scheduled_rounds.discard(key)
        with app.app_context():
            try:
                outcome = app.extensions['room_engine'].expire_round(code, round_number)
            except RoomNotFound:
                app.logger.info(f"[timer-abort] room={code} no longer exists")
                return
            app.logger.info(f"[timer-fire] room={code} round={round_number} expired={outcome.result['expired']}")
            dispatch(app, outcome)

    _run(app, _worker)


def schedule_idle_eviction(app, code: str) -> None:
    """Close ``code`` if it still has no subscribers after ROOM_IDLE_TIMEOUT_SEC."""
    timeout = float(app.config.get('ROOM_IDLE_TIMEOUT_SEC', 0))
    if timeout <= 0 or _timers_disabled(app):
        return
    deadline = time.time() + timeout
    _idle_deadlines[code] = deadline
    app.logger.info(f"[idle-set] room={code} timeout={timeout}s")

    def _runner():
        sleep_for = max(0.0, deadline - time.time())
        if sleep_for:
            socketio.sleep(sleep_for)
        if _idle_deadlines.get(code) != deadline:
            return
        hub = app.extensions['room_hub']

        def _still_idle():
            return _idle_deadlines.get(code) == deadline and hub.subscriber_count(code) == 0

        with app.app_context():
            try:
                outcome = app.extensions['room_engine'].close_idle_room(code, _still_idle)
            except RoomNotFound:
                return
            if outcome is None:
                app.logger.info(f"[idle-skip] room={code} watched again")
                return
            _idle_deadlines.pop(code, None)
            dispatch(app, outcome)

    _run(app, _runner)


def cancel_idle_eviction(code: str) -> None:
    _idle_deadlines.pop(code, None)


def arm_restored_rooms(app) -> None:
    """Re-arm timers for rooms reloaded from snapshots."""
    store = app.extensions['room_store']
    for code in store.all_codes():
        view = store.view(code)
        if view is None:
            continue
        if view['phase'] == Phase.ROUND_ACTIVE.value:
            schedule_round_timer(app, code, view['currentRound'])
        schedule_idle_eviction(app, code)
