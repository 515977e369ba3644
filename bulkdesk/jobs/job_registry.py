"""
In-memory registry of running bulk jobs.

One JobControl per (session, profile). The runner owns the loop; commands
only flip the control's status, and the runner observes the change at its
next check point. Nothing here survives a restart.
"""

import asyncio

from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.models.domain.job_domain import JobKey, JobStatus

logger = get_logger(__name__)


class JobAlreadyRunningError(Exception):
    """A job is already registered for this session and profile."""

    def __init__(self, key: JobKey):
        super().__init__(f'A job is already running for profile "{key.profile_name}".')
        self.key = key


class JobControl:
    """
    Mutable control block for one job.

    ``_runnable`` is set whenever the job may make progress (not paused);
    ``_stopped`` is set once the job is ended or removed. Both are events so
    the runner awaits transitions instead of polling.
    """

    def __init__(self, key: JobKey):
        self.key = key
        self.status = JobStatus.RUNNING
        self.detached = False
        self._runnable = asyncio.Event()
        self._runnable.set()
        self._stopped = asyncio.Event()

    @property
    def should_stop(self) -> bool:
        return self.status is JobStatus.ENDED or self.detached

    def apply(self, status: JobStatus) -> bool:
        """
        Move to ``status``. Ended and detached are terminal.

        Returns:
            bool: False if the job had already stopped and nothing changed
        """
        if self.should_stop:
            return False
        self.status = status
        if status is JobStatus.PAUSED:
            self._runnable.clear()
        else:
            self._runnable.set()
        if status is JobStatus.ENDED:
            self._stopped.set()
        return True

    def detach(self) -> None:
        """Mark the job as removed from the registry; counts as ended."""
        self.detached = True
        self._runnable.set()
        self._stopped.set()

    async def wait_while_paused(self) -> None:
        """Block until resumed, ended or removed. Returns immediately when running."""
        await self._runnable.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Inter-item delay that wakes early when the job stops.

        Returns:
            bool: True if the full delay elapsed, False if the job stopped
        """
        if self.should_stop:
            return False
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False


class JobRegistry:
    """Explicit job map handed to the runner and the session handlers."""

    def __init__(self):
        self._jobs: dict[JobKey, JobControl] = {}

    def create(self, key: JobKey) -> JobControl:
        """
        Register a new running job.

        Raises:
            JobAlreadyRunningError: If the key is already registered
        """
        if key in self._jobs:
            raise JobAlreadyRunningError(key)
        control = JobControl(key)
        self._jobs[key] = control
        logger.debug("Job registered", session_id=key.session_id, profile_name=key.profile_name)
        return control

    def set_status(self, key: JobKey, status: JobStatus) -> bool:
        """
        Change a job's status. Returns False (no-op) when no such job exists
        or the job has already ended.
        """
        control = self._jobs.get(key)
        if control is None:
            return False
        if not control.apply(status):
            logger.debug(
                "Status change for stopped job ignored",
                session_id=key.session_id,
                profile_name=key.profile_name,
                status=status.value,
            )
            return False
        logger.info(
            "Job status changed",
            session_id=key.session_id,
            profile_name=key.profile_name,
            status=status.value,
        )
        return True

    def exists(self, key: JobKey) -> bool:
        return key in self._jobs

    def get(self, key: JobKey) -> JobControl | None:
        return self._jobs.get(key)

    def delete(self, key: JobKey, control: JobControl | None = None) -> bool:
        """
        Remove a job. When ``control`` is given, only that exact entry is
        removed, so a finishing runner cannot delete a successor's entry.
        """
        current = self._jobs.get(key)
        if current is None or (control is not None and current is not control):
            return False
        del self._jobs[key]
        return True

    def delete_all_for_session(self, session_id: str) -> int:
        """Detach and remove every job owned by a session. Returns the count removed."""
        keys = [key for key in self._jobs if key.session_id == session_id]
        for key in keys:
            self._jobs.pop(key).detach()
        if keys:
            logger.info("Session jobs removed", session_id=session_id, count=len(keys))
        return len(keys)

    def __len__(self) -> int:
        return len(self._jobs)
