"""Background scheduler for periodic alert evaluation."""
import logging
import threading
import schedule

logger = logging.getLogger("stockalert.scheduler")


class MonitorScheduler:
    """Runs a job immediately and then every `interval_minutes` on a daemon thread.

    Each scheduler owns its own `schedule.Scheduler`, so stopping one never
    clears jobs registered elsewhere. Once stop() returns no new run starts.
    """

    def __init__(self, job, interval_minutes=5, poll_seconds=1.0):
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.job = job
        self.interval_minutes = interval_minutes
        self.poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread = None
        self._consecutive_failures = 0

    @property
    def running(self):
        return self._thread is not None and not self._stop.is_set()

    def start(self, run_immediately=True):
        """Run one pass now, then schedule recurring passes."""
        if self.running:
            logger.warning("Scheduler already running")
            return
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval_minutes * 60).seconds.do(self._run_job)

        if run_immediately:
            self._run_job()

        self._thread = threading.Thread(target=self._run_loop, name="stockalert-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval_minutes} min)")

    def stop(self, timeout=5):
        """Stop recurring runs. Safe to call whether or not the scheduler is running."""
        self._stop.set()
        self._scheduler.clear()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Scheduler thread still finishing a run after stop")
        if thread is not None:
            logger.info("Scheduler stopped")

    def _run_loop(self):
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(self.poll_seconds)

    def _run_job(self):
        if self._stop.is_set():
            return
        try:
            self.job()
            self._consecutive_failures = 0
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Scheduled run failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive scheduled run failures!")
