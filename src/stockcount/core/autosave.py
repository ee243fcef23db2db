"""
Debounced, rate-limited, validated persistence of an editing session's batch.

    idle -> scheduled -> saving -> idle
                          saving -> retrying -> saving      (persistence error)
                          saving -> idle + last_error       (validation error, or retries exhausted)

Every save sends the whole current batch (replace-per-group), so the last
full write wins. Only one write is ever in flight; a batch arriving during a
write waits for the next cycle.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import partial
import logging
import time
from typing import Awaitable, Callable, Protocol, Sequence

from .errors import PersistenceError
from .models import InventoryRecord
from .quality import CatalogLookup, ValidationResult, ValidationThresholds, validate

LOGGER = logging.getLogger(__name__)


class GroupWriter(Protocol):
    """The write path of the persistence collaborator."""

    async def replace_group(
        self, branch: str, group: str, records: Sequence[InventoryRecord]
    ) -> None: ...


class SaveState(Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    SAVING = "saving"
    RETRYING = "retrying"


@dataclass(frozen=True)
class AutoSaveConfig:
    """Timing knobs for auto-save."""

    debounce_seconds: float = 2.0
    min_interval_seconds: float = 5.0
    max_retries: int = 3
    retry_step_seconds: float = 1.0


@dataclass(frozen=True)
class SaveFailure:
    """User-visible reason a save did not happen."""

    kind: str  # "validation" or "persistence"
    message: str
    attempts: int


@dataclass(frozen=True)
class SaveOutcome:
    ok: bool
    attempts: int
    warnings: tuple[str, ...] = ()
    failure: SaveFailure | None = None


Validator = Callable[[Sequence[InventoryRecord], CatalogLookup | None], ValidationResult]


class SaveCoordinator:
    """
    Auto-save for one (branch, group) editing session.

    Must be used from inside a running event loop. Timing comes from
    AutoSaveConfig, and `thresholds` tune the default validator. The minimum
    interval is measured from the start of the last successful write, so
    retries of a failing write follow the linear backoff alone. Clock and
    sleep are injectable for tests.
    """

    def __init__(
        self,
        branch: str,
        group: str,
        store: GroupWriter,
        catalog: CatalogLookup | None = None,
        config: AutoSaveConfig | None = None,
        *,
        thresholds: ValidationThresholds | None = None,
        validator: Validator | None = None,
        on_error: Callable[[SaveFailure], None] | None = None,
        on_success: Callable[[SaveOutcome], None] | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.branch = branch
        self.group = group
        self.store = store
        self.catalog = catalog
        self.config = config or AutoSaveConfig()
        self.thresholds = thresholds or ValidationThresholds()
        self._validator = validator or partial(validate, **self.thresholds.as_kwargs())
        self._on_error = on_error
        self._on_success = on_success
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

        self._lock = asyncio.Lock()
        self._pending: list[InventoryRecord] | None = None
        self._timer: asyncio.Task | None = None
        self._active: asyncio.Task | None = None
        self._last_saved_start: float | None = None
        self._state = SaveState.IDLE
        self.retry_count = 0
        self.last_error: SaveFailure | None = None
        self.last_outcome: SaveOutcome | None = None

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._active is not None

    @property
    def has_unsaved_changes(self) -> bool:
        return self._pending is not None

    def schedule_save(self, batch: Sequence[InventoryRecord], immediate: bool = False) -> None:
        """
        Queue the full batch for saving.

        Restarts the debounce window; `immediate` skips it (explicit save)
        but never the minimum interval between writes.
        """
        self._pending = [record.copy() for record in batch]
        self._cancel_timer()
        delay = 0.0 if immediate else self.config.debounce_seconds
        self._timer = asyncio.get_running_loop().create_task(self._fire_after(delay))
        if self._state is SaveState.IDLE:
            self._state = SaveState.SCHEDULED

    async def save_now(self, batch: Sequence[InventoryRecord] | None = None) -> SaveOutcome | None:
        """Save immediately and wait for the result."""
        if batch is None:
            if self._pending is None:
                return self.last_outcome
            batch = self._pending
        self.schedule_save(batch, immediate=True)
        await self.wait_idle()
        return self.last_outcome

    async def wait_idle(self) -> None:
        """Wait until no save is scheduled or running."""
        while True:
            tasks = {t for t in (self._timer, self._active) if t is not None and not t.done()}
            if not tasks:
                return
            done, _ = await asyncio.wait(tasks)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

    def cancel(self) -> None:
        """Drop a scheduled save that has not started writing yet."""
        self._cancel_timer()
        self._pending = None
        if self._active is None:
            self._state = SaveState.IDLE

    async def close(self) -> None:
        """Session teardown: cancel what is scheduled, await what is writing."""
        self.cancel()
        if self._active is not None:
            await asyncio.wait({self._active})

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _wait_for_rate_limit(self) -> None:
        if self._last_saved_start is None:
            return
        wait = self._last_saved_start + self.config.min_interval_seconds - self._clock()
        if wait > 0:
            LOGGER.debug("Saving too frequently, delaying %.2fs", wait)
            await self._sleep(wait)

    async def _fire_after(self, delay: float) -> SaveOutcome | None:
        await self._sleep(delay)
        async with self._lock:
            await self._wait_for_rate_limit()
            # From here on the write is in flight and can no longer be cancelled.
            batch, self._pending = self._pending, None
            self._timer = None
            if batch is None:
                return None
            self._active = asyncio.current_task()
            try:
                outcome = await self._run_cycle(batch)
            finally:
                self._active = None
                self._state = SaveState.SCHEDULED if self._timer is not None else SaveState.IDLE
            if not outcome.ok and self._pending is None:
                # Nothing was written; keep the batch so the session still reports it.
                self._pending = batch
            self.last_outcome = outcome
            return outcome

    async def _run_cycle(self, batch: list[InventoryRecord]) -> SaveOutcome:
        self._state = SaveState.SAVING
        result = self._validator(batch, self.catalog)
        if not result.valid:
            failure = SaveFailure("validation", result.errors[0], attempts=0)
            LOGGER.warning(
                "Save of %s/%s blocked by validation: %s", self.branch, self.group, failure.message
            )
            return self._fail(failure, result.warnings)
        for warning in result.warnings:
            LOGGER.warning("Saving %s/%s with warning: %s", self.branch, self.group, warning)

        attempt = 0
        while True:
            attempt += 1
            started = self._clock()
            try:
                await self.store.replace_group(self.branch, self.group, batch)
            except PersistenceError as exc:
                self.retry_count = attempt
                if attempt > self.config.max_retries:
                    LOGGER.error(
                        "Auto-save of %s/%s failed after %d attempts: %s",
                        self.branch,
                        self.group,
                        attempt,
                        exc,
                    )
                    return self._fail(
                        SaveFailure("persistence", str(exc) or "Could not save inventory", attempt),
                        result.warnings,
                    )
                LOGGER.warning(
                    "Save of %s/%s failed, retrying (%d/%d): %s",
                    self.branch,
                    self.group,
                    attempt,
                    self.config.max_retries,
                    exc,
                )
                self._state = SaveState.RETRYING
                await self._sleep(attempt * self.config.retry_step_seconds)
                self._state = SaveState.SAVING
                continue

            self._last_saved_start = started
            self.retry_count = 0
            self.last_error = None
            outcome = SaveOutcome(True, attempt, tuple(result.warnings))
            LOGGER.info("Saved %d record(s) for %s/%s", len(batch), self.branch, self.group)
            if self._on_success:
                self._on_success(outcome)
            return outcome

    def _fail(self, failure: SaveFailure, warnings: list[str]) -> SaveOutcome:
        self.last_error = failure
        if self._on_error:
            self._on_error(failure)
        return SaveOutcome(False, failure.attempts, tuple(warnings), failure)
