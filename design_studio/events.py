import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from .errors import GenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageChanged:
    run_id: int
    previous: Any  # core.Stage
    current: Any
    error: Optional[GenError] = None


@dataclass(frozen=True)
class CandidateAppended:
    run_id: int
    candidate: Any  # core.Candidate
    position: int


@dataclass(frozen=True)
class RequestFailed:
    """A single request in a batch failed; the batch carries on unless it is a quota error."""

    run_id: int
    stage: Any
    index: int
    error: GenError
    # Design the failed mockup was requested for.
    source_ref: Optional[str] = None


PipelineEvent = Union[StageChanged, CandidateAppended, RequestFailed]
Listener = Callable[[PipelineEvent], None]


class EventStream:
    """
    Fan-out of pipeline events to subscribed listeners, in subscription order.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener` and return a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: PipelineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Pipeline event listener failed on {type(event).__name__}")
