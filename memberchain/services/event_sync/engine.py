"""
Event Sync Engine.

Advances a persisted block cursor over the membership contract's events.

One cycle:
1. Read the chain head; nothing to do if it is not past the cursor.
2. Scan the bounded window [cursor + 1, min(head, cursor + 1 + W)].
3. Query each event filter for the window. A provider rate limit aborts
   the remaining filters and the cycle ends without moving the cursor.
4. Merge and sort events by (block number, log index).
5. Apply each event once: skip if the ledger already has its
   (tx hash, kind) key, else record it, confirm the pending action,
   invalidate cached member info and notify observers.
6. Persist the cursor at the window end.

Cycles are single-flight: a trigger arriving while a cycle is running is
dropped.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from enum import StrEnum
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from web3.exceptions import Web3Exception

from memberchain.config.constants import CACHE_KEY_MEMBER, SYNC_CURSOR_NAME
from memberchain.models.pending_action import PendingAction
from memberchain.services.blockchain.abi import TRACKED_EVENTS
from memberchain.services.blockchain.chain_client import ChainClient
from memberchain.services.blockchain.contract_manager import ContractManager
from memberchain.services.blockchain.exceptions import (
    BlockchainError,
    NoProviderAvailableError,
    is_rate_limit_error,
)
from memberchain.services.cache.ttl_cache import TTLCache
from memberchain.services.event_sync.events import (
    ACTION_EVENT_KINDS,
    ChainEvent,
    decode_log,
)
from memberchain.services.ledger import Ledger
from memberchain.utils.security import mask_address, mask_tx_hash

EventObserver = Callable[[ChainEvent, PendingAction | None], Awaitable[None]]


class SyncState(StrEnum):
    """Engine state."""

    IDLE = "idle"
    SCANNING = "scanning"
    APPLYING = "applying"


class EventSyncEngine:
    """
    Idempotent, ordered event ingestion.

    Usage:
        engine = EventSyncEngine(client, contracts, ledger, cache)
        engine.add_observer(notify_user)
        await engine.run_cycle()   # called every few seconds by the scheduler
    """

    def __init__(
        self,
        chain: ChainClient,
        contracts: ContractManager,
        ledger: Ledger,
        cache: TTLCache,
        event_names: Iterable[str] = TRACKED_EVENTS,
        block_window: int = 4,
        filter_delay: float = 0.5,
        apply_delay: float = 0.0,
        rate_limit_cooldown: float = 10.0,
        start_block: int | None = None,
        cursor_name: str = SYNC_CURSOR_NAME,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize engine.

        Args:
            chain: Chain client for head and log queries
            contracts: Contract bindings
            ledger: Event, pending action and cursor store
            cache: Cache holding member info to invalidate
            event_names: Event filters, queried in this order
            block_window: Extra blocks scanned past cursor + 1 per cycle
            filter_delay: Pause between filter queries
            apply_delay: Pause between applied events
            rate_limit_cooldown: Cycles are skipped for this long after a
                provider rate limit
            start_block: First block to scan when no cursor is persisted
                (defaults to the chain head)
            cursor_name: Ledger cursor row name
            clock: Monotonic time source
            sleep: Async sleep function
        """
        if block_window < 0:
            raise ValueError("block_window must not be negative")

        self.chain = chain
        self.contracts = contracts
        self.ledger = ledger
        self.cache = cache
        self.event_names = list(event_names)
        self.block_window = block_window
        self.filter_delay = filter_delay
        self.apply_delay = apply_delay
        self.rate_limit_cooldown = rate_limit_cooldown
        self.start_block = start_block
        self.cursor_name = cursor_name
        self._clock = clock
        self._sleep = sleep

        self._cycle_lock = asyncio.Lock()
        self._observers: list[EventObserver] = []
        self._state = SyncState.IDLE
        self._cursor: int | None = None
        self._last_head: int | None = None
        self._cooldown_until = 0.0

        self._stats = {
            "cycles": 0,
            "skipped_busy": 0,
            "skipped_cooldown": 0,
            "events_applied": 0,
            "duplicates": 0,
            "anomalies": 0,
            "errors": 0,
        }
        self._last_error: str | None = None

        self.logger = logger.bind(service="EventSyncEngine")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def cursor(self) -> int | None:
        return self._cursor

    def add_observer(self, observer: EventObserver) -> None:
        """Register a callback invoked after each applied event."""
        self._observers.append(observer)

    def register_filter(self, event_name: str) -> None:
        """Add an event filter to the scan."""
        if event_name not in self.event_names:
            self.event_names.append(event_name)

    async def run_cycle(self) -> dict[str, Any]:
        """
        Run one scan/apply cycle unless one is already running.

        Returns:
            Dict with cycle results: window, counts, errors and skip reason
        """
        result: dict[str, Any] = {
            "success": False,
            "skipped": None,
            "from_block": None,
            "to_block": None,
            "events_found": 0,
            "applied": 0,
            "duplicates": 0,
            "anomalies": 0,
            "errors": [],
        }

        if self._cycle_lock.locked():
            self._stats["skipped_busy"] += 1
            self.logger.debug("[EventSync] Cycle already running, trigger dropped")
            result["skipped"] = "busy"
            return result

        if self._clock() < self._cooldown_until:
            self._stats["skipped_cooldown"] += 1
            result["skipped"] = "cooldown"
            return result

        async with self._cycle_lock:
            self._stats["cycles"] += 1
            try:
                await self._run_cycle_locked(result)
            except NoProviderAvailableError as e:
                self._record_error(result, f"No provider available: {e}")
                self.logger.critical(f"[EventSync] {e}")
            except (BlockchainError, Web3Exception, SQLAlchemyError, ValueError) as e:
                if is_rate_limit_error(e):
                    self._start_cooldown()
                self._record_error(result, str(e))
                self.logger.error(f"[EventSync] Cycle failed: {e}")
            finally:
                self._state = SyncState.IDLE

        if result["errors"]:
            await self._persist_error("; ".join(result["errors"]))
        return result

    def get_status(self) -> dict[str, Any]:
        """
        Get engine status for diagnostics.

        Returns:
            Dict with state, cursor, head, lag and counters
        """
        lag = None
        if self._cursor is not None and self._last_head is not None:
            lag = max(0, self._last_head - self._cursor)
        return {
            "state": self._state.value,
            "cursor": self._cursor,
            "last_head": self._last_head,
            "lag_blocks": lag,
            "filters": list(self.event_names),
            "cooldown_remaining": max(0.0, self._cooldown_until - self._clock()),
            "last_error": self._last_error,
            **self._stats,
        }

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle_locked(self, result: dict[str, Any]) -> None:
        self._state = SyncState.SCANNING

        head = await self.chain.get_block_number()
        self._last_head = head

        if self._cursor is None:
            await self._load_cursor(head)

        cursor = self._cursor
        if head <= cursor:
            result["success"] = True
            result["skipped"] = "no_new_blocks"
            return

        from_block = cursor + 1
        to_block = min(head, from_block + self.block_window)
        result["from_block"] = from_block
        result["to_block"] = to_block

        events = await self._scan(from_block, to_block, result)
        if events is None:
            return

        events.sort(key=lambda event: event.sort_key)
        result["events_found"] = len(events)

        self._state = SyncState.APPLYING
        for index, event in enumerate(events):
            if index and self.apply_delay:
                await self._sleep(self.apply_delay)
            await self._apply(event, result)

        await self.ledger.save_cursor(self.cursor_name, to_block)
        self._cursor = to_block
        result["success"] = True

        if events:
            self.logger.info(
                f"[EventSync] Blocks {from_block}-{to_block}: "
                f"{result['applied']} applied, {result['duplicates']} duplicates"
            )

    async def _load_cursor(self, head: int) -> None:
        """Resume from the persisted cursor, or start at start_block/head."""
        persisted = await self.ledger.load_cursor(self.cursor_name)
        if persisted is not None:
            self._cursor = persisted
            self.logger.info(f"[EventSync] Resuming from block {persisted}")
            return

        initial = self.start_block - 1 if self.start_block is not None else head
        await self.ledger.save_cursor(self.cursor_name, initial)
        self._cursor = initial
        self.logger.info(f"[EventSync] No cursor persisted, starting after block {initial}")

    async def _scan(
        self, from_block: int, to_block: int, result: dict[str, Any]
    ) -> list[ChainEvent] | None:
        """
        Query every filter for the window.

        Returns:
            Merged events, or None if the window must be retried
        """
        events: list[ChainEvent] = []

        for index, event_name in enumerate(self.event_names):
            if index and self.filter_delay:
                await self._sleep(self.filter_delay)

            try:
                logs = await self.chain.call(
                    lambda w3, name=event_name: self._get_logs(w3, name, from_block, to_block),
                    f"get_logs[{event_name}]",
                )
            except NoProviderAvailableError:
                raise
            except (BlockchainError, Web3Exception, ValueError) as e:
                if is_rate_limit_error(e):
                    self._start_cooldown()
                    self.logger.warning(
                        f"[EventSync] Rate limited on {event_name}, aborting remaining "
                        f"filters and cooling down {self.rate_limit_cooldown}s"
                    )
                    self._record_error(result, f"rate limited: {event_name}")
                else:
                    self.logger.error(f"[EventSync] Filter {event_name} failed: {e}")
                    self._record_error(result, f"{event_name}: {e}")
                return None

            for log in logs:
                try:
                    events.append(decode_log(log))
                except ValueError as e:
                    self.logger.error(f"[EventSync] Undecodable {event_name} log: {e}")
                    self._record_error(result, f"decode {event_name}: {e}")
                    return None

        return events

    def _get_logs(self, w3: Any, event_name: str, from_block: int, to_block: int) -> list:
        contract = self.contracts.membership(w3)
        event = getattr(contract.events, event_name)
        return list(event().get_logs(from_block=from_block, to_block=to_block))

    async def _apply(self, event: ChainEvent, result: dict[str, Any]) -> None:
        """Apply one event exactly once."""
        if await self.ledger.has_event(event.tx_hash, event.kind):
            self._stats["duplicates"] += 1
            result["duplicates"] += 1
            return

        applied = await self.ledger.apply_event(event)
        if not applied.recorded:
            self._stats["duplicates"] += 1
            result["duplicates"] += 1
            return

        self._stats["events_applied"] += 1
        result["applied"] += 1

        if not applied.action_found and event.kind in ACTION_EVENT_KINDS:
            self._stats["anomalies"] += 1
            result["anomalies"] += 1
            self.logger.warning(
                f"[EventSync] {event.kind} {mask_tx_hash(event.tx_hash)} for "
                f"{mask_address(event.member_address)} has no pending action"
            )

        for address in event.involved_addresses():
            self.cache.delete(CACHE_KEY_MEMBER.format(address=address.lower()))

        await self._notify(event, applied.pending_action)

    async def _notify(self, event: ChainEvent, action: PendingAction | None) -> None:
        for observer in self._observers:
            try:
                await observer(event, action)
            except Exception as e:
                self.logger.exception(
                    f"[EventSync] Observer failed for {event.kind} "
                    f"{mask_tx_hash(event.tx_hash)}: {e}"
                )

    def _start_cooldown(self) -> None:
        self._cooldown_until = self._clock() + self.rate_limit_cooldown

    def _record_error(self, result: dict[str, Any], message: str) -> None:
        self._stats["errors"] += 1
        self._last_error = message
        result["errors"].append(message)

    async def _persist_error(self, message: str) -> None:
        try:
            await self.ledger.record_cursor_error(self.cursor_name, message)
        except SQLAlchemyError as e:
            self.logger.warning(f"[EventSync] Could not persist sync error: {e}")
