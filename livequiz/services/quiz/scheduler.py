import logging
from typing import Callable


class ScheduledTask:
    """Handle for a delayed callback. Cancelling before it fires skips it."""

    def __init__(self, name: str = ''):
        self.name = name
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SocketIOScheduler:
    """Run delayed callbacks as Socket.IO background tasks.

    Works with whichever async mode the Socket.IO server picked (threading,
    eventlet or gevent), because both sleeping and spawning go through it.
    Failures inside a callback are logged and never reach other rooms.
    """

    def __init__(self, socketio, logger=None):
        self.socketio = socketio
        self.logger = logger or logging.getLogger(__name__)

    def schedule(self, delay: float, fn: Callable, *args, name: str = '') -> ScheduledTask:
        task = ScheduledTask(name)

        def _worker():
            if delay > 0:
                self.socketio.sleep(delay)
            if task.cancelled:
                return
            try:
                fn(*args)
            except Exception:
                self.logger.exception(f"[timer-error] task={task.name}")

        self.socketio.start_background_task(_worker)
        return task


class InertScheduler:
    """Accepts tasks and never runs them (timers disabled, e.g. under TESTING)."""

    def schedule(self, delay: float, fn: Callable, *args, name: str = '') -> ScheduledTask:
        return ScheduledTask(name)
