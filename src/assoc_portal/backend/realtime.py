"""
assoc_portal.backend.realtime

In-process change feed.

Responsibilities:
- Fan out row changes (INSERT/UPDATE/DELETE) published by the backend.
- Scope deliveries by table and an optional `column=eq.value` filter.
- Give every subscribed channel an idempotent `unsubscribe()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from assoc_portal.backend.contract import ChangeCallback, ChangeEvent, ChangeFilter
from assoc_portal.backend.query import Filter, matches, parse_filter
from assoc_portal.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _Binding:
    scope_key: str
    event: ChangeFilter
    table: str
    filters: tuple[Filter, ...]
    callback: ChangeCallback

    def wants(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event != "*" and self.event != change.type:
            return False
        # DELETE only carries the old row; match filters against whichever exists.
        row = change.new if change.new is not None else change.old
        return row is not None and matches(row, self.filters)


class RealtimeHub:
    def __init__(self) -> None:
        self._bindings: dict[int, list[_Binding]] = {}
        self._next_id = 0

    @property
    def subscription_count(self) -> int:
        return len(self._bindings)

    def scopes(self) -> list[str]:
        return sorted({b.scope_key for group in self._bindings.values() for b in group})

    def register(self, bindings: list[_Binding]) -> int:
        self._next_id += 1
        self._bindings[self._next_id] = list(bindings)
        return self._next_id

    def release(self, handle: int) -> None:
        self._bindings.pop(handle, None)

    def publish(self, change: ChangeEvent) -> None:
        # Snapshot: callbacks may unsubscribe (or subscribe) while we iterate.
        for group in list(self._bindings.values()):
            for binding in group:
                if not binding.wants(change):
                    continue
                try:
                    binding.callback(change)
                except Exception:
                    log.exception(
                        "change_callback_failed",
                        scope=binding.scope_key,
                        table=change.table,
                        change=change.type,
                    )


@dataclass(slots=True)
class ChannelSubscription:
    hub: RealtimeHub
    handle: int
    scope_key: str
    active: bool = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.hub.release(self.handle)


@dataclass(slots=True)
class RealtimeChannel:
    hub: RealtimeHub
    scope_key: str
    _pending: list[_Binding] = field(default_factory=list)

    def on(
        self,
        event: ChangeFilter,
        *,
        table: str,
        filter: str | None = None,
        callback: ChangeCallback,
    ) -> RealtimeChannel:
        filters = (parse_filter(filter),) if filter else ()
        self._pending.append(_Binding(self.scope_key, event, table, filters, callback))
        return self

    def subscribe(self) -> ChannelSubscription:
        if not self._pending:
            raise ValueError(f"channel {self.scope_key!r} has no bindings")
        handle = self.hub.register(self._pending)
        self._pending = []
        log.debug("channel_subscribed", scope=self.scope_key)
        return ChannelSubscription(hub=self.hub, handle=handle, scope_key=self.scope_key)


# --- Module Notes -----------------------------------------------------------
# Delivery is synchronous and happens after the writing transaction commits, so a
# callback never observes a row that could still roll back.
