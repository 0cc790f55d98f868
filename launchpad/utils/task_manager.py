import asyncio
import logging
import weakref
from datetime import datetime
from functools import partial
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

from launchpad.core.models.base import utcnow

logger = logging.getLogger(__name__)


class TaskManager:
    """
    Named background tasks.

    Starting a task under a name that is still running returns the running
    task instead of a second one. A failing task is logged and forgotten;
    it never takes the other tasks down with it.
    """

    def __init__(self):
        self._tasks: Dict[str, weakref.ref] = {}
        # weakrefs alone would let running tasks be garbage collected
        self._strong_refs: Set[asyncio.Task] = set()
        self._task_start_times: Dict[str, datetime] = {}
        self._last_results: Dict[str, Dict[str, Any]] = {}
        self._shutdown_handlers: List[Callable] = []
        self.is_shutting_down = False

    def register_shutdown_handler(self, handler: Callable) -> None:
        """Register a function to be called during shutdown"""
        if not callable(handler):
            raise ValueError("Shutdown handler must be callable")
        if handler not in self._shutdown_handlers:
            self._shutdown_handlers.append(handler)
            logger.debug(f"Registered shutdown handler: {handler.__name__}")

    def start_task(self, name: str, coro: Callable[..., Coroutine], *args: Any, **kwargs: Any) -> asyncio.Task:
        """
        Start and register a new task

        Args:
            name: Unique identifier for the task
            coro: Coroutine function to run as task
            *args: Arguments to pass to the coroutine function
            **kwargs: Keyword arguments to pass to the coroutine function

        Returns:
            asyncio.Task: The created task, or the one already running under name

        Raises:
            RuntimeError: If attempting to start a task during shutdown
        """
        if self.is_shutting_down:
            logger.warning(f"Attempted to start task {name} during shutdown")
            raise RuntimeError("Cannot start new tasks during shutdown")

        existing_task = self.get_task(name)
        if existing_task and not existing_task.done():
            logger.warning(f"Task {name} is already running")
            return existing_task

        task = asyncio.create_task(coro(*args, **kwargs), name=name)
        self._tasks[name] = weakref.ref(task)
        self._strong_refs.add(task)
        self._task_start_times[name] = utcnow()

        task.add_done_callback(partial(self._handle_task_completion, name))
        logger.debug(f"Started task: {name}")
        return task

    def get_task(self, name: str) -> Optional[asyncio.Task]:
        """Get a task by name if it exists and is still valid"""
        task_ref = self._tasks.get(name)
        task = task_ref() if task_ref else None
        if task_ref and task is None:
            self._cleanup_task(name)
        return task

    def is_task_running(self, name: str) -> bool:
        task = self.get_task(name)
        return bool(task and not task.done())

    def get_running_tasks(self) -> Dict[str, float]:
        """Running task names mapped to how long they have been running, in seconds"""
        now = utcnow()
        return {
            name: (now - self._task_start_times[name]).total_seconds()
            for name in list(self._tasks)
            if self.is_task_running(name) and name in self._task_start_times
        }

    def last_result(self, name: str) -> Optional[Dict[str, Any]]:
        """Outcome of the most recent finished run of a named task"""
        return self._last_results.get(name)

    async def cancel_task(self, name: str, timeout: float = 5.0) -> bool:
        task = self.get_task(name)
        if not task:
            return False

        if not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.error(f"Task {name} failed to cancel within {timeout} seconds")
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Error while cancelling task {name}: {e}")

        self._cleanup_task(name)
        return True

    async def cancel_all_tasks(self) -> None:
        """Run shutdown handlers, then cancel all running tasks"""
        if self.is_shutting_down:
            return
        self.is_shutting_down = True

        for handler in self._shutdown_handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler()
                else:
                    handler()
            except Exception as e:
                logger.error(f"Error in shutdown handler {handler.__name__}: {e}")

        tasks = [task for task in self._strong_refs if not task.done()]
        if tasks:
            logger.info(f"Cancelling {len(tasks)} running tasks...")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    def _cleanup_task(self, name: str) -> None:
        self._tasks.pop(name, None)
        self._task_start_times.pop(name, None)

    def _handle_task_completion(self, name: str, task: asyncio.Task) -> None:
        self._strong_refs.discard(task)
        started = self._task_start_times.get(name, utcnow())
        record: Dict[str, Any] = {
            'finishedAt': utcnow().isoformat(),
            'durationSeconds': (utcnow() - started).total_seconds(),
        }
        if task.cancelled():
            logger.info(f"Task {name} was cancelled")
            record['status'] = 'cancelled'
        else:
            exc = task.exception()
            if exc is None:
                logger.debug(f"Task {name} completed successfully")
                record['status'] = 'completed'
                record['result'] = task.result()
            else:
                logger.error(f"Task {name} failed with exception: {exc}", exc_info=exc)
                record['status'] = 'failed'
                record['error'] = str(exc)
        self._last_results[name] = record

        # Only forget the name if it still points at this task
        current = self._tasks.get(name)
        if current is not None and current() is task:
            self._cleanup_task(name)
