from __future__ import annotations

import datetime as dt
import logging
from threading import RLock
from typing import Callable, Optional

from .errors import NoActiveTimerError, NotFoundError
from .models import Task, Timer
from .repository import TaskRepository, TimerRepository
from .store import TimeEntryStore
from .utils import local_date, ms_to_hours, utcnow

log = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]

# Guards the single active-timer slot for every registry in this process.
TIMER_LOCK = RLock()


class TimerRegistry:
    """Running timers, at most one across all tasks.

    ``start``, ``pause``, ``resume`` and ``stop`` each run their
    read-modify-write sequence under one re-entrant lock, so the last
    ``start`` to run always wins the slot.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        timers: TimerRepository,
        store: TimeEntryStore,
        *,
        clock: Clock = utcnow,
        lock: Optional[RLock] = None,
        default_description: str = "Working on task",
    ) -> None:
        self._tasks = tasks
        self._timers = timers
        self._store = store
        self._clock = clock
        self._lock = lock if lock is not None else TIMER_LOCK
        self._default_description = default_description

    def active_timer(self) -> Optional[Timer]:
        return self._timers.active()

    def active_task(self) -> Optional[Task]:
        timer = self.active_timer()
        return timer.task if timer is not None else None

    def clear_all(self) -> int:
        """Drop every running timer without logging time. Returns how many were dropped.

        Flushes but does not commit; ``start`` commits the replacement timer in
        the same transaction.
        """
        with self._lock:
            timers = self._timers.list()
            for timer in timers:
                log.info("Discarding running timer %s on task %s", timer.id, timer.task_id)
                self._timers.delete(timer)
            return len(timers)

    def start(self, task_id: int, description: Optional[str] = None) -> Task:
        with self._lock:
            task = self._get_task(task_id)
            self.clear_all()
            timer = Timer(
                start_time=self._clock(),
                description=description or self._default_description,
                is_paused=False,
                paused_duration_ms=0,
            )
            task.active_timer = timer
            task.updated_at = self._clock()
            self._timers.upsert(timer)
            self._timers.commit()
            log.info("Timer %s started on task %s", timer.id, task.id)
            return task

    def pause(self, task_id: int) -> Task:
        with self._lock:
            task = self._get_task(task_id)
            timer = task.active_timer
            if timer is None:
                raise NoActiveTimerError("No active timer for task", task_id=task_id)
            if timer.is_paused:
                raise NoActiveTimerError("Timer is already paused", task_id=task_id, timer_id=timer.id)
            timer.mark_paused(self._clock())
            self._timers.upsert(timer)
            self._timers.commit()
            log.info("Timer %s paused on task %s", timer.id, task.id)
            return task

    def resume(self, task_id: int) -> Task:
        with self._lock:
            task = self._get_task(task_id)
            timer = task.active_timer
            if timer is None:
                raise NoActiveTimerError("No active timer for task", task_id=task_id)
            if not timer.is_paused:
                raise NoActiveTimerError("Timer is not paused", task_id=task_id, timer_id=timer.id)
            timer.mark_resumed(self._clock())
            self._timers.upsert(timer)
            self._timers.commit()
            log.info("Timer %s resumed on task %s", timer.id, task.id)
            return task

    def stop(self, task_id: int, description: Optional[str] = None) -> Task:
        with self._lock:
            task = self._get_task(task_id)
            timer = task.active_timer
            if timer is None:
                raise NoActiveTimerError("No active timer for task", task_id=task_id)
            timer_id = timer.id
            now = self._clock()
            timer.fold_open_pause(now)
            duration = ms_to_hours(timer.working_ms(now))
            entry = self._store.append(
                task,
                duration=duration,
                description=description or timer.description or "",
                entry_date=local_date(timer.start_time),
                start_time=timer.start_time,
                end_time=now,
            )
            self._timers.delete(timer)
            self._timers.commit()
            log.info(
                "Timer %s stopped on task %s: %.2fh logged as entry %s",
                timer_id,
                task.id,
                duration,
                entry.id,
            )
            return task

    def _get_task(self, task_id: int) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task not found", task_id=task_id)
        return task
