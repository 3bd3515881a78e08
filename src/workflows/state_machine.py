"""
Order state machine and per-key locks used by the workflows
"""

import asyncio
import weakref
from datetime import datetime, timezone
from typing import Dict, FrozenSet, MutableMapping

from src.workflows.exceptions import WorkflowStateConflict
from src.workflows.models import DomainOrder, OrderState


TRANSITIONS: Dict[OrderState, FrozenSet[OrderState]] = {
    OrderState.INITIATED: frozenset({OrderState.AWAITING_PAYMENT, OrderState.FAILED}),
    OrderState.AWAITING_PAYMENT: frozenset({OrderState.REGISTERING, OrderState.FAILED}),
    OrderState.REGISTERING: frozenset({OrderState.PROVISIONING, OrderState.FAILED}),
    OrderState.PROVISIONING: frozenset({OrderState.COMPLETED, OrderState.FAILED}),
    OrderState.COMPLETED: frozenset(),
    OrderState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({OrderState.COMPLETED, OrderState.FAILED})


class OrderStateMachine:
    """Validates and applies order state transitions"""

    @staticmethod
    def can_transition(current: OrderState, target: OrderState) -> bool:
        return target in TRANSITIONS[current]

    @classmethod
    def transition(cls, order: DomainOrder, target: OrderState) -> DomainOrder:
        """
        Move an order to ``target`` in place.

        Raises:
            WorkflowStateConflict: If the transition is not allowed
        """
        if not cls.can_transition(order.state, target):
            raise WorkflowStateConflict(order.state.value, target.value)
        order.state = target
        order.updated_at = datetime.now(timezone.utc)
        return order

    @staticmethod
    def is_terminal(state: OrderState) -> bool:
        return state in TERMINAL_STATES


class KeyedLocks:
    """
    One asyncio.Lock per key (order id or domain id).

    Work on the same key is serialized; different keys run in parallel.
    Locks are held weakly, so a key's lock is dropped once no coroutine
    holds or waits on it.
    """

    def __init__(self):
        self._locks: MutableMapping[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_key(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __contains__(self, key: str) -> bool:
        return key in self._locks
