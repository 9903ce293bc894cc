"""
Long-lived report state for the back office.

A single ReportStore owns the current period, category and the last
committed dataset. Each refresh is tagged with a monotonic generation;
a response that resolves after a newer refresh was issued is dropped.
"""
import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from canteen.schemas.reports import ReportPeriod
from canteen.services.aggregator import ALL_CATEGORIES
from canteen.services.fetcher import ReportDataset
from canteen.services.report import ReportView, build_view
from canteen.services.window import period_label

logger = logging.getLogger("canteen.reports")

Fetch = Callable[[ReportPeriod, Optional[str]], Awaitable[ReportDataset]]
Handler = Callable[..., Any]

TOPICS = ("menu:updated", "reservations:updated", "topups:updated")


class EventChannel:
    """Explicit publish/subscribe channel for cross-screen refresh signals."""

    def __init__(self, topics: Tuple[str, ...] = TOPICS):
        self.topics = topics
        self._subs: Dict[str, List[Handler]] = {t: [] for t in topics}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        if topic not in self._subs:
            raise ValueError(f"unknown topic: {topic}")
        self._subs[topic].append(handler)

        def unsubscribe() -> None:
            if handler in self._subs[topic]:
                self._subs[topic].remove(handler)
        return unsubscribe

    async def publish(self, topic: str, payload: Any = None, **context: Any) -> int:
        """Call every handler as `handler(topic, payload, **context)`; returns how many ran."""
        if topic not in self._subs:
            raise ValueError(f"unknown topic: {topic}")
        handlers = list(self._subs[topic])
        for h in handlers:
            res = h(topic, payload, **context)
            if inspect.isawaitable(res):
                await res
        return len(handlers)


@dataclass(frozen=True)
class ReportState:
    period: ReportPeriod = field(default_factory=ReportPeriod)
    category: str = ALL_CATEGORIES
    dataset: ReportDataset = field(default_factory=ReportDataset)
    generation: int = 0


@dataclass(frozen=True)
class RefreshResult:
    generation: int
    committed: bool
    state: ReportState


class ReportStore:
    def __init__(self, fetch: Fetch, period: Optional[ReportPeriod] = None):
        self._fetch = fetch
        self._state = ReportState(period=period or ReportPeriod())
        self._issued = 0
        self._memo: Optional[Tuple[tuple, ReportView]] = None

    @property
    def state(self) -> ReportState:
        return self._state

    async def refresh(self, period: Optional[ReportPeriod] = None, token: Optional[str] = None) -> RefreshResult:
        period = period or self._state.period
        self._issued += 1
        tag = self._issued
        dataset = await self._fetch(period, token)
        if tag != self._issued:
            logger.info("dropping stale refresh %d (latest issued %d) for %s",
                        tag, self._issued, period_label(period))
            return RefreshResult(generation=tag, committed=False, state=self._state)
        self._state = replace(self._state, period=period, dataset=dataset, generation=tag)
        return RefreshResult(generation=tag, committed=True, state=self._state)

    def set_category(self, category: Optional[str]) -> ReportState:
        self._state = replace(self._state, category=category or ALL_CATEGORIES)
        return self._state

    def view(self) -> ReportView:
        s = self._state
        key = (s.generation, s.period, s.category)
        if self._memo is None or self._memo[0] != key:
            self._memo = (key, build_view(s.dataset, s.period, s.category))
        return self._memo[1]

    def bind(self, channel: EventChannel) -> List[Callable[[], None]]:
        async def on_update(topic: str, payload: Any, token: Optional[str] = None) -> None:
            logger.info("%s received, refreshing report", topic)
            await self.refresh(token=token)
        return [channel.subscribe(t, on_update) for t in channel.topics]
