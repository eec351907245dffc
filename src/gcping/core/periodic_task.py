import threading
from collections.abc import Callable

from .utils import setup_logger

logger = setup_logger(name="core.periodic_task")


class PeriodicTask:
    def __init__(self, interval_seconds: float, task_function: Callable):
        """
        Initialize a periodic task.

        Args:
            interval_seconds: Interval between task executions in seconds
            task_function: The function to be executed periodically
        """
        self.interval_seconds = interval_seconds
        self.task_function = task_function
        self.running = False
        self.thread = None
        self._stop_event = threading.Event()

    def start(self):
        """Start the periodic task"""
        if not self.running:
            self.running = True
            self._stop_event.clear()
            self.thread = threading.Thread(target=self._run, daemon=True)
            self.thread.start()

    def stop(self):
        """Stop the periodic task and wait for the current run to finish"""
        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join()

    @property
    def stop_event(self) -> threading.Event:
        """Set once stop() is called; lets the task stop early"""
        return self._stop_event

    def _run(self):
        """Main loop for the periodic task"""
        while self.running:
            try:
                self.task_function()
            except Exception as e:
                logger.error(f"Error in periodic task: {e}", exc_info=True)
            # Wakes up early when stopped
            self._stop_event.wait(self.interval_seconds)
