"""Fixed-rate display refresh.

The ticker only reads cached state: the registry's in-memory accounts and
the external entry's last observed signature. It never touches the network
or the credential store, so a slow poll cannot stall the countdowns.
"""

import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from structlog import get_logger

from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.constants import DEFAULT_TICK_INTERVAL_SECONDS, LIVE_THRESHOLD_SECONDS
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.display.state import AccountView, project


logger = get_logger(__name__)

RenderCallback = Callable[[list[AccountView]], None]


class DisplayTicker:
    def __init__(
        self,
        registry: AccountRegistry,
        entry: ExternalCredentialEntry,
        render: RenderCallback,
        interval: float = DEFAULT_TICK_INTERVAL_SECONDS,
        live_threshold: timedelta = timedelta(seconds=LIVE_THRESHOLD_SECONDS),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.registry = registry
        self.entry = entry
        self.render = render
        self.interval = interval
        self.live_threshold = live_threshold
        self.clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> list[AccountView]:
        """Project every account at the current time."""
        now = self.clock()
        signature = self.entry.observed_signature
        return [
            project(account, now, signature, self.live_threshold)
            for account in self.registry.list()
        ]

    def tick(self) -> None:
        """Render once; render failures are logged, not raised."""
        try:
            self.render(self.snapshot())
        except Exception as e:
            logger.error("render_failed", error=str(e), exc_info=e)

    async def run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
