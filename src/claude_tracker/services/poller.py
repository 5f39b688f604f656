"""Per-account usage polling.

Each account gets its own APScheduler interval job, so a slow or failing
account never delays the others. Results are installed through the registry
in one critical section; a poll cancelled or failed part-way leaves the
previous snapshot in place.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from structlog import get_logger

from claude_tracker.accounts.models import FetchFailure, UsageSnapshot
from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.constants import POLL_STAGGER_SECONDS, TRACKER_SERVICE_NAME
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.exceptions import (
    AccountNotFoundError,
    CredentialStoreError,
    FetchError,
    FetchErrorKind,
)
from claude_tracker.services.usage_client import UsageClient


logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def job_id(account_id: int) -> str:
    return f"poll-{account_id}"


class UsagePoller:
    """Schedules and runs usage fetches.

    Features:
    - One interval job per account (``max_instances=1``, ``coalesce=True``)
    - Start times staggered so accounts don't fetch in the same instant
    - Jobs pause on an expired credential and resume on the next success
    - On-demand polls that leave the schedule untouched
    """

    def __init__(
        self,
        registry: AccountRegistry,
        store: CredentialStore,
        client: UsageClient,
        clock: Clock = utc_now,
    ):
        """Initialize the poller.

        Args:
            registry: Account registry to read from and install results into
            store: Credential store holding each account's secret
            client: Usage HTTP client
            clock: Source of "now" for failure timestamps and job start times
        """
        self.registry = registry
        self.store = store
        self.client = client
        self.clock = clock
        self._scheduler: Any = None  # AsyncIOScheduler from apscheduler
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the scheduler with one job per account.

        Must be called from within a running event loop.
        """
        if self._running:
            logger.warning("poller_already_running")
            return

        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduler.start()
        self._running = True
        self.sync_jobs()

        logger.info(
            "poller_started",
            accounts=len(self.registry),
            interval=self.registry.settings.poll_interval_secs,
        )

    def stop(self) -> None:
        """Stop the scheduler; in-flight polls are left to finish or be cancelled."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("poller_stopped")

    def sync_jobs(self) -> None:
        """Add jobs for new accounts and drop jobs of deleted ones.

        A new job first fires one interval from now; callers poll new
        accounts themselves (``poll_all`` at startup, ``poll_one`` on add).
        """
        if not self._running:
            return

        account_ids = [account.id for account in self.registry.list()]
        wanted = {job_id(account_id) for account_id in account_ids}

        for job in self._scheduler.get_jobs():
            if job.id not in wanted:
                job.remove()
                logger.debug("poll_job_removed", job_id=job.id)

        interval = self.registry.settings.poll_interval_secs
        start = self.clock()
        for index, account_id in enumerate(account_ids):
            if self._scheduler.get_job(job_id(account_id)) is not None:
                continue
            self._scheduler.add_job(
                self._scheduled_poll,
                "interval",
                seconds=interval,
                args=[account_id],
                id=job_id(account_id),
                name=f"Usage poll {account_id}",
                next_run_time=start
                + timedelta(seconds=interval + POLL_STAGGER_SECONDS * index),
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.debug("poll_job_added", account_id=account_id, interval=interval)

    def is_paused(self, account_id: int) -> bool:
        if not self._running:
            return False
        job = self._scheduler.get_job(job_id(account_id))
        return job is not None and job.next_run_time is None

    def pause(self, account_id: int) -> None:
        if not self._running:
            return
        try:
            self._scheduler.pause_job(job_id(account_id))
        except JobLookupError:
            return
        logger.info("poll_job_paused", account_id=account_id)

    def resume(self, account_id: int) -> None:
        """Resume a paused job; running jobs keep their next run time."""
        if not self.is_paused(account_id):
            return
        self._scheduler.resume_job(job_id(account_id))
        logger.info("poll_job_resumed", account_id=account_id)

    async def poll_one(self, account_id: int) -> UsageSnapshot:
        """Fetch and install usage for one account.

        Returns:
            The fetched snapshot, even if it was discarded because the account
            was deleted or a newer snapshot was installed meanwhile

        Raises:
            AccountNotFoundError: If no account has this id
            FetchError: If the fetch failed; the failure is recorded first
        """
        account = self.registry.get(account_id)

        try:
            secret = await self._read_secret(account.credential_ref)
            snapshot = await self.client.fetch_usage(
                secret, account.auth_method, account.org_id
            )
        except FetchError as e:
            await self._record_failure(account_id, e)
            raise

        if await self.registry.install_snapshot(account_id, snapshot):
            logger.info(
                "usage_fetched",
                account_id=account_id,
                five_hour=snapshot.five_hour.percent,
                seven_day=snapshot.seven_day.percent if snapshot.seven_day else None,
            )
            self.resume(account_id)
        else:
            logger.debug("usage_discarded", account_id=account_id)
        return snapshot

    async def poll_all(self) -> dict[int, UsageSnapshot | BaseException]:
        """Poll every account concurrently.

        Returns:
            Each account's snapshot, or the exception its poll raised
        """
        account_ids = [account.id for account in self.registry.list()]
        results = await asyncio.gather(
            *(self.poll_one(account_id) for account_id in account_ids),
            return_exceptions=True,
        )
        outcome = dict(zip(account_ids, results, strict=True))
        for account_id, result in outcome.items():
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException) and not isinstance(
                result, FetchError | AccountNotFoundError
            ):
                logger.error(
                    "poll_unexpected_error",
                    account_id=account_id,
                    error=str(result),
                    exc_info=result,
                )
        return outcome

    async def _read_secret(self, credential_ref: str) -> str:
        try:
            secret = await self.store.get(TRACKER_SERVICE_NAME, credential_ref)
        except CredentialStoreError as e:
            raise FetchError(
                FetchErrorKind.TRANSIENT, f"Credential store: {e.message}"
            ) from e
        if secret is None:
            raise FetchError(FetchErrorKind.CREDENTIAL_EXPIRED, "No credential, re-import")
        return secret

    async def _record_failure(self, account_id: int, error: FetchError) -> None:
        recorded = await self.registry.record_fetch_error(
            account_id, FetchFailure.from_error(error, now=self.clock())
        )
        if not recorded:
            return
        logger.warning(
            "usage_fetch_failed",
            account_id=account_id,
            kind=error.kind,
            status=error.status_code,
            error=error.message,
        )
        if error.is_expired:
            self.pause(account_id)

    async def _scheduled_poll(self, account_id: int) -> None:
        try:
            await self.poll_one(account_id)
        except FetchError:
            # Already recorded on the account
            pass
        except AccountNotFoundError:
            self._remove_job(account_id)

    def _remove_job(self, account_id: int) -> None:
        if not self._running:
            return
        try:
            self._scheduler.remove_job(job_id(account_id))
        except JobLookupError:
            return
        logger.debug("poll_job_removed", job_id=job_id(account_id))
