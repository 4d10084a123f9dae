from __future__ import annotations

import asyncio

from .schemas import ChoiceCounters, ChoiceKind, MessageRef


class StateStore:
    """Process-lifetime, in-memory view of per-user bot state.

    Counters are a cache of the ledger and are never read back into it.
    Settlement flags are keyed by month key, so they reset when the month
    changes.
    """

    def __init__(self) -> None:
        self.counters: dict[str, ChoiceCounters] = {}
        self.message_refs: dict[str, MessageRef] = {}
        self.settled: dict[str, dict[str, bool]] = {}
        self.bot_user_id: str | None = None
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    def counters_for(self, user_id: str) -> ChoiceCounters:
        if user_id not in self.counters:
            self.counters[user_id] = ChoiceCounters()
        return self.counters[user_id]

    def increment(self, user_id: str, kind: ChoiceKind) -> ChoiceCounters:
        counters = self.counters_for(user_id)
        setattr(counters, kind.value, getattr(counters, kind.value) + 1)
        return counters

    def decrement(self, user_id: str, choice: str) -> ChoiceCounters:
        counters = self.counters_for(user_id)
        if choice in {kind.value for kind in ChoiceKind}:
            setattr(counters, choice, max(0, getattr(counters, choice) - 1))
        return counters

    def set_settled(self, user_id: str, month_key: str, flag: bool) -> None:
        self.settled.setdefault(month_key, {})[user_id] = flag

    def is_settled(self, user_id: str, month_key: str) -> bool:
        return bool(self.settled.get(month_key, {}).get(user_id, False))

    def message_ref(self, user_id: str) -> MessageRef | None:
        return self.message_refs.get(user_id)

    def remember_message(self, user_id: str, ref: MessageRef) -> None:
        self.message_refs[user_id] = ref
