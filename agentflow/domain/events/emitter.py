"""Scheduler event dispatch."""

import logging
from dataclasses import dataclass
from typing import Iterable

from agentflow.domain.events.event import WorkflowEvent
from agentflow.domain.events.event_types import WorkflowEventType
from agentflow.domain.events.observer import WorkflowObserver

logger = logging.getLogger(__name__)


@dataclass
class _Subscription:
    observer: WorkflowObserver
    # None means every event type
    event_types: frozenset[WorkflowEventType] | None

    def wants(self, event: WorkflowEvent) -> bool:
        return self.event_types is None or event.event_type in self.event_types


class WorkflowEventEmitter:
    """Dispatches events to subscribed observers, in subscription order.

    One instance per scheduler; there is no process-wide registry. A
    failing observer is logged and skipped so progress reporting can never
    break a run.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(
        self,
        observer: WorkflowObserver,
        event_types: Iterable[WorkflowEventType] | None = None,
    ) -> None:
        """Subscribe to the given event types, or to everything when None."""
        types = None if event_types is None else frozenset(event_types)
        self._subscriptions.append(_Subscription(observer, types))

    def unsubscribe(self, observer: WorkflowObserver) -> None:
        self._subscriptions = [
            s for s in self._subscriptions if s.observer is not observer
        ]

    def emit(self, event: WorkflowEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.wants(event):
                continue
            try:
                subscription.observer.on_event(event)
            except Exception as e:
                logger.warning(
                    f"Observer {subscription.observer!r} failed on "
                    f"{event.event_type.value} for session {event.session_id}: {e}"
                )
