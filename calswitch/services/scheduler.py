"""
Poll scheduler - shared provider fetches and per-switch evaluation.

One periodic task drives tick(). Each tick:

1. Collects the distinct providers used by registered switches
2. Fetches each provider once (never once per switch), concurrently,
   unless a recent cached result can be reused
3. Delivers the result to every switch of that provider as soon as it
   arrives, without waiting for the other providers

Fetch failures are annotated onto every dependent switch while the last
known active/upcoming data stays visible. A failure while evaluating one
switch turns only that switch into an error state; the aggregate failure
count is logged once per tick.

On-demand refreshes (request_fetch) bypass the fetch interval but are
debounced, and only re-evaluate the switch that asked.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from calswitch.environments.base import (
    EvaluationError,
    FetchResult,
    HttpError,
    NotConnected,
    ProviderAdapter,
)
from calswitch.models import Provider, SwitchRule, SwitchState, SwitchStatus
from calswitch.services.evaluation import evaluate
from calswitch.services.switch_registry import SwitchRegistry
from calswitch.services.token_store import TokenStore


logger = logging.getLogger("calswitch.scheduler")


MIN_POLL_INTERVAL_SECONDS = 30
MAX_POLL_INTERVAL_SECONDS = 3600


def clamp_poll_interval(seconds: float) -> float:
    return float(min(max(seconds, MIN_POLL_INTERVAL_SECONDS), MAX_POLL_INTERVAL_SECONDS))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EvaluationOutcome:
    """Result of delivering one fetch result to one switch."""
    switch_id: str
    state: Optional[SwitchState]
    error: Optional[EvaluationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TickReport:
    """Summary of one tick, returned to callers and the /poll endpoint."""
    fetched: List[Provider] = field(default_factory=list)
    reused: List[Provider] = field(default_factory=list)
    provider_errors: Dict[Provider, str] = field(default_factory=dict)
    evaluated: int = 0
    failed: int = 0


class PollScheduler:
    """
    Coordinates fetching and evaluation for every registered switch.

    Args:
        registry: Switch rules and states
        token_store: Used to tell unconfigured providers apart
        adapters: One ProviderAdapter per supported provider
        fetch_interval: Minimum time between scheduled fetches of a provider
        poll_interval: Time between ticks of the background loop
        lookback: Window start offset before now
        lookahead: Window end offset after now
        request_debounce: Minimum gap between on-demand refreshes
        clock: Source of "now"
    """

    def __init__(
        self,
        registry: SwitchRegistry,
        token_store: TokenStore,
        adapters: Mapping[Provider, ProviderAdapter],
        fetch_interval: timedelta = timedelta(minutes=5),
        poll_interval: timedelta = timedelta(seconds=60),
        lookback: timedelta = timedelta(hours=24),
        lookahead: timedelta = timedelta(hours=168),
        request_debounce: timedelta = timedelta(seconds=3),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.token_store = token_store
        self.adapters = dict(adapters)
        self.fetch_interval = fetch_interval
        self.poll_interval_seconds = clamp_poll_interval(poll_interval.total_seconds())
        self.lookback = lookback
        self.lookahead = lookahead
        self.request_debounce = request_debounce
        self._clock = clock

        self._results: Dict[Provider, FetchResult] = {}
        self._fetched_at: Dict[Provider, datetime] = {}
        self._fetch_locks: Dict[Provider, asyncio.Lock] = {}
        self._last_request_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # FETCHING
    # -------------------------------------------------------------------------

    def cached_result(self, provider: Provider) -> Optional[FetchResult]:
        return self._results.get(provider)

    def _needs_fetch(self, provider: Provider, now: datetime) -> bool:
        cached = self._results.get(provider)
        if cached is None or cached.error is not None:
            return True
        return now - self._fetched_at[provider] >= self.fetch_interval

    def _lock(self, provider: Provider) -> asyncio.Lock:
        if provider not in self._fetch_locks:
            self._fetch_locks[provider] = asyncio.Lock()
        return self._fetch_locks[provider]

    async def _obtain(self, provider: Provider, force: bool) -> Tuple[FetchResult, bool]:
        """
        Return the provider's result, fetching when needed.

        Returns:
            (result, fetched) where fetched is False for a cache hit
        """
        async with self._lock(provider):
            now = self._clock()
            if not force and not self._needs_fetch(provider, now):
                return self._results[provider], False

            adapter = self.adapters.get(provider)
            if adapter is None:
                result = FetchResult(
                    provider=provider,
                    error=NotConnected(f"No adapter configured for {provider.value}"),
                )
            else:
                try:
                    result = await adapter.fetch_events(now - self.lookback, now + self.lookahead)
                except Exception as e:
                    logger.error(f"{provider.value} adapter raised: {e}", exc_info=True)
                    result = FetchResult(provider=provider, error=HttpError(0, str(e)))

            if result.error is not None:
                logger.warning(f"{provider.value} fetch failed: {result.error}")

            self._results[provider] = result
            self._fetched_at[provider] = now
            return result, True

    # -------------------------------------------------------------------------
    # EVALUATION
    # -------------------------------------------------------------------------

    def _error_status(self, result: FetchResult) -> SwitchStatus:
        if isinstance(result.error, NotConnected) and not self.token_store.get(result.provider).is_connected:
            return SwitchStatus.UNCONFIGURED
        return SwitchStatus.ERROR

    def _evaluate_switch(self, rule: SwitchRule, result: FetchResult) -> EvaluationOutcome:
        """Compute and apply one switch's state. Never raises."""
        now = self._clock()
        previous = self.registry.get_state(rule.switch_id)

        if result.error is not None:
            # Keep the last known active/upcoming data visible
            state = previous.model_copy(
                update={
                    "status": self._error_status(result),
                    "last_error": str(result.error) or type(result.error).__name__,
                    "last_evaluated_at": now,
                }
            )
            return EvaluationOutcome(rule.switch_id, self.registry.apply_state(state))

        try:
            state = evaluate(result.events, rule, now)
        except Exception as e:
            error = EvaluationError(f"Evaluation failed for {rule.switch_id}: {e}")
            logger.error(str(error), exc_info=True)
            state = previous.model_copy(
                update={
                    "status": SwitchStatus.ERROR,
                    "last_error": str(error),
                    "last_evaluated_at": now,
                }
            )
            return EvaluationOutcome(rule.switch_id, self.registry.apply_state(state), error)

        if state.is_active != previous.is_active:
            logger.info(
                f"Switch {rule.switch_id} turned {'on' if state.is_active else 'off'}",
                extra={"active_count": state.active_count},
            )
        return EvaluationOutcome(rule.switch_id, self.registry.apply_state(state))

    def evaluate_events(self, switch_id: str, result: FetchResult) -> Optional[SwitchState]:
        """
        Deliver a fetch result to one switch.

        Returns:
            The switch's new state, or None for an unknown switch
        """
        if switch_id not in self.registry:
            logger.warning(f"Ignoring events for unknown switch {switch_id}")
            return None
        return self._evaluate_switch(self.registry.get_rule(switch_id), result).state

    # -------------------------------------------------------------------------
    # TICK
    # -------------------------------------------------------------------------

    async def _tick_provider(self, provider: Provider, force: bool) -> TickReport:
        """Fetch one provider and evaluate its switches as soon as the result arrives."""
        partial = TickReport()
        result, fetched = await self._obtain(provider, force)
        (partial.fetched if fetched else partial.reused).append(provider)
        if result.error is not None:
            partial.provider_errors[provider] = str(result.error)

        for rule in self.registry.rules_for(provider):
            outcome = self._evaluate_switch(rule, result)
            partial.evaluated += 1
            if not outcome.ok:
                partial.failed += 1
        return partial

    async def tick(self, force: bool = False) -> TickReport:
        """
        Run one fetch-and-evaluate cycle across all providers in use.

        Each provider is fetched and its switches evaluated independently,
        so a slow provider never holds up switches of another one.

        Args:
            force: Fetch every provider regardless of the fetch interval

        Returns:
            TickReport summarizing fetches and evaluation failures
        """
        report = TickReport()
        providers = self.registry.providers()
        if not providers:
            return report

        partials = await asyncio.gather(*(self._tick_provider(p, force) for p in providers))

        for partial in partials:
            report.fetched.extend(partial.fetched)
            report.reused.extend(partial.reused)
            report.provider_errors.update(partial.provider_errors)
            report.evaluated += partial.evaluated
            report.failed += partial.failed

        if report.failed:
            logger.error(f"{report.failed} of {report.evaluated} switch evaluation(s) failed this tick")
        logger.debug(
            "Tick complete",
            extra={
                "fetched": [p.value for p in report.fetched],
                "reused": [p.value for p in report.reused],
                "evaluated": report.evaluated,
            },
        )
        return report

    async def request_fetch(self, switch_id: str, reason: str = "") -> bool:
        """
        Force a fetch of one switch's provider and re-evaluate that switch.

        Debounced globally: a request arriving within request_debounce of the
        previous accepted one is ignored.

        Returns:
            True if the request was carried out
        """
        if switch_id not in self.registry:
            logger.warning(f"Refresh requested for unknown switch {switch_id}")
            return False

        now = self._clock()
        if self._last_request_at is not None and now - self._last_request_at < self.request_debounce:
            logger.debug(f"Debounced refresh request for {switch_id}")
            return False
        self._last_request_at = now

        rule = self.registry.get_rule(switch_id)
        logger.info(f"On-demand refresh for {switch_id}" + (f" ({reason})" if reason else ""))

        result, _ = await self._obtain(rule.provider, force=True)
        # The switch may have been removed while the fetch was in flight
        if switch_id in self.registry:
            self._evaluate_switch(self.registry.get_rule(switch_id), result)
        return True

    def reevaluate(self, switch_id: str) -> Optional[SwitchState]:
        """
        Re-apply a switch's rules to the cached result without fetching.

        Returns:
            The new state, a fresh "awaiting first evaluation" state when
            nothing is cached for the switch's provider yet, or None for an
            unknown switch
        """
        if switch_id not in self.registry:
            return None
        rule = self.registry.get_rule(switch_id)
        cached = self._results.get(rule.provider)
        if cached is None:
            status = (
                SwitchStatus.CONNECTED
                if self.token_store.get(rule.provider).is_connected
                else SwitchStatus.UNCONFIGURED
            )
            return self.registry.apply_state(SwitchState(switch_id=switch_id, status=status))
        return self._evaluate_switch(rule, cached).state

    # -------------------------------------------------------------------------
    # BACKGROUND LOOP
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info(f"Starting poller (every {self.poll_interval_seconds:.0f}s)")
        self._task = asyncio.create_task(self._run(), name="calswitch-poller")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Poller stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Poll tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.poll_interval_seconds)
