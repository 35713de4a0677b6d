from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from agentflow.domain.events.event import WorkflowEvent


class WorkflowObserver(Protocol):
    """Anything with ``on_event`` can follow a scheduler run.

    Called synchronously from the scheduler's event loop, so implementations
    should return quickly.
    """

    def on_event(self, event: "WorkflowEvent") -> None:
        ...
