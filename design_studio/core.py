import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .errors import GenError, GenErrorKind, InvalidTransition, SelectionRequired, classify_exception
from .events import CandidateAppended, EventStream, RequestFailed, StageChanged
from .gateway import Failure, GenerationGateway, GenerationResult
from .listing import Listing
from .prompts import DESIGN_VARIATIONS, MOCKUPS_PER_DESIGN
from .selection import Selections
from .store import SelectionStage, SelectionStore

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    DESIGNING_BATCH = "designing_batch"
    AWAITING_DESIGN_SELECTION = "awaiting_design_selection"
    MOCKING_BATCH = "mocking_batch"
    AWAITING_MOCKUP_SELECTION = "awaiting_mockup_selection"
    LISTING = "listing"
    COMPLETE = "complete"
    FAILED = "failed"


class StageEvent(str, Enum):
    START_DESIGNS = "start_designs"
    DESIGNS_READY = "designs_ready"
    START_MOCKUPS = "start_mockups"
    MOCKUPS_READY = "mockups_ready"
    START_LISTING = "start_listing"
    LISTING_READY = "listing_ready"
    BATCH_FAILED = "batch_failed"
    RESET = "reset"


IN_FLIGHT_STAGES: FrozenSet[Stage] = frozenset(
    {Stage.DESIGNING_BATCH, Stage.MOCKING_BATCH, Stage.LISTING}
)

_MOCKUP_ENTRY_STAGES = (
    Stage.AWAITING_DESIGN_SELECTION,
    Stage.MOCKING_BATCH,
    Stage.AWAITING_MOCKUP_SELECTION,
    Stage.LISTING,
    Stage.COMPLETE,
    Stage.FAILED,
)

_LISTING_ENTRY_STAGES = (
    Stage.AWAITING_MOCKUP_SELECTION,
    Stage.LISTING,
    Stage.COMPLETE,
    Stage.FAILED,
)

TRANSITIONS: Dict[Tuple[Stage, StageEvent], Stage] = {
    (Stage.DESIGNING_BATCH, StageEvent.DESIGNS_READY): Stage.AWAITING_DESIGN_SELECTION,
    (Stage.MOCKING_BATCH, StageEvent.MOCKUPS_READY): Stage.AWAITING_MOCKUP_SELECTION,
    (Stage.LISTING, StageEvent.LISTING_READY): Stage.COMPLETE,
    **{(stage, StageEvent.START_MOCKUPS): Stage.MOCKING_BATCH for stage in _MOCKUP_ENTRY_STAGES},
    **{(stage, StageEvent.START_LISTING): Stage.LISTING for stage in _LISTING_ENTRY_STAGES},
    **{(stage, StageEvent.BATCH_FAILED): Stage.FAILED for stage in IN_FLIGHT_STAGES},
    **{(stage, StageEvent.START_DESIGNS): Stage.DESIGNING_BATCH for stage in Stage},
    **{(stage, StageEvent.RESET): Stage.IDLE for stage in Stage},
}


def transition(stage: Stage, event: StageEvent) -> Stage:
    """Next stage for `event` in `stage`; raises InvalidTransition if not allowed."""
    try:
        return TRANSITIONS[(stage, event)]
    except KeyError:
        raise InvalidTransition(stage, event) from None


@dataclass(frozen=True)
class Candidate:
    ref: str
    stage: SelectionStage
    index: int
    source_ref: Optional[str] = None
    prompt_index: Optional[int] = None


@dataclass(frozen=True)
class PipelineState:
    stage: Stage
    run_id: int
    designs: Tuple[Candidate, ...] = ()
    mockups: Tuple[Candidate, ...] = ()
    listing: Optional[Listing] = None
    error: Optional[GenError] = None


class PipelineOrchestrator:
    """
    Sequences the generation stages:
    - 3 concurrent design requests
    - 10 mockup requests per selected design, bounded by `mockup_concurrency`
    - 1 listing request

    Every batch runs under a fresh run id. Results and stage changes coming
    from a batch whose run id is no longer current are dropped.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        mockup_concurrency: int = 1,
        events: Optional[EventStream] = None,
    ) -> None:
        if mockup_concurrency < 1:
            raise ValueError("mockup_concurrency must be at least 1")

        self.gateway = gateway
        self.mockup_concurrency = mockup_concurrency
        self.events = events or EventStream()
        self.store = SelectionStore(self._candidate_refs)

        self._stage = Stage.IDLE
        self._run_id = 0
        self._selections: Optional[Selections] = None
        self._designs: List[Candidate] = []
        self._mockups: List[Candidate] = []
        self._listing: Optional[Listing] = None
        self._error: Optional[GenError] = None

    # -- accessors -----------------------------------------------------------

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def run_id(self) -> int:
        return self._run_id

    @property
    def selections(self) -> Optional[Selections]:
        return self._selections

    @property
    def designs(self) -> Tuple[Candidate, ...]:
        return tuple(self._designs)

    @property
    def mockups(self) -> Tuple[Candidate, ...]:
        return tuple(self._mockups)

    @property
    def listing(self) -> Optional[Listing]:
        return self._listing

    @property
    def error(self) -> Optional[GenError]:
        return self._error

    @property
    def state(self) -> PipelineState:
        return PipelineState(
            stage=self._stage,
            run_id=self._run_id,
            designs=self.designs,
            mockups=self.mockups,
            listing=self._listing,
            error=self._error,
        )

    def selected_designs(self) -> List[str]:
        return self.store.selected(SelectionStage.DESIGN)

    def selected_mockups(self) -> List[str]:
        return self.store.selected(SelectionStage.MOCKUP)

    # -- stages --------------------------------------------------------------

    async def run_designs(self, selections: Selections) -> PipelineState:
        """
        Start a new run: drop everything from earlier runs and generate the
        design variations.
        """
        next_stage = transition(self._stage, StageEvent.START_DESIGNS)
        run_id = self._new_run_id()
        self._designs.clear()
        self._mockups.clear()
        self.store.clear()
        self._listing = None
        self._error = None
        self._selections = selections
        self._set_stage(run_id, next_stage)

        logger.info(f"Run {run_id}: requesting {DESIGN_VARIATIONS} design variations")
        results = await asyncio.gather(
            *(
                _settle(self.gateway.generate_design(selections, index))
                for index in range(DESIGN_VARIATIONS)
            )
        )

        if not self._is_current(run_id):
            logger.warning(f"Run {run_id}: discarding design results from a superseded run")
            return self.state

        first_error: Optional[GenError] = None
        for index, result in enumerate(results):
            if result.ok:
                self._publish(run_id, Candidate(ref=result.value, stage=SelectionStage.DESIGN, index=index))
            else:
                first_error = first_error or result.error
                self.events.emit(RequestFailed(run_id, SelectionStage.DESIGN, index, result.error))

        if self._designs:
            self._advance(run_id, StageEvent.DESIGNS_READY)
        else:
            self._fail(run_id, first_error or GenError(GenErrorKind.UNKNOWN, "No designs generated"))
        return self.state

    async def run_mockups(self) -> PipelineState:
        """
        Generate mockups for every selected design.

        Successful mockups are published as soon as they arrive. A rate-limit
        or payment error stops the whole batch; other errors only skip the
        request that hit them.
        """
        next_stage = transition(self._stage, StageEvent.START_MOCKUPS)
        designs = self.selected_designs()
        if not designs:
            raise SelectionRequired("Select at least one design before generating mockups")

        run_id = self._new_run_id()
        self._mockups.clear()
        self.store.clear(SelectionStage.MOCKUP)
        self._listing = None
        self._error = None
        self._set_stage(run_id, next_stage)

        selections = self._selections or Selections()
        semaphore = asyncio.Semaphore(self.mockup_concurrency)
        abort = asyncio.Event()
        quota_error: Optional[GenError] = None
        first_error: Optional[GenError] = None

        async def request(design_ref: str, prompt_index: int) -> None:
            nonlocal quota_error, first_error
            async with semaphore:
                if abort.is_set() or not self._is_current(run_id):
                    return
                result = await _settle(self.gateway.generate_mockup(selections, design_ref, prompt_index))

            if result.ok:
                self._publish(
                    run_id,
                    Candidate(
                        ref=result.value,
                        stage=SelectionStage.MOCKUP,
                        index=len(self._mockups),
                        source_ref=design_ref,
                        prompt_index=prompt_index,
                    ),
                )
                return

            if not self._is_current(run_id):
                return
            first_error = first_error or result.error
            self.events.emit(
                RequestFailed(run_id, SelectionStage.MOCKUP, prompt_index, result.error, source_ref=design_ref)
            )
            if result.error.kind.is_quota and quota_error is None:
                quota_error = result.error
                abort.set()

        logger.info(
            f"Run {run_id}: requesting {MOCKUPS_PER_DESIGN * len(designs)} mockups "
            f"for {len(designs)} design(s), concurrency {self.mockup_concurrency}"
        )
        tasks = [
            asyncio.ensure_future(request(design_ref, prompt_index))
            for design_ref in designs
            for prompt_index in range(MOCKUPS_PER_DESIGN)
        ]
        try:
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    task.result()
                if abort.is_set() and pending:
                    logger.warning(f"Run {run_id}: quota error, cancelling {len(pending)} mockup request(s)")
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    break
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        if not self._is_current(run_id):
            logger.warning(f"Run {run_id}: mockup batch was superseded")
            return self.state

        if quota_error is not None:
            self._fail(run_id, quota_error)
        elif not self._mockups:
            self._fail(run_id, first_error or GenError(GenErrorKind.UNKNOWN, "No mockups generated"))
        else:
            self._advance(run_id, StageEvent.MOCKUPS_READY)
        return self.state

    async def run_listing(self) -> PipelineState:
        """Generate the listing once. Success completes the run, failure fails it."""
        next_stage = transition(self._stage, StageEvent.START_LISTING)
        if not self.selected_mockups():
            raise SelectionRequired("Select at least one mockup before generating the listing")

        run_id = self._new_run_id()
        self._listing = None
        self._error = None
        self._set_stage(run_id, next_stage)

        result = await _settle(self.gateway.generate_listing(self._selections or Selections()))
        if not self._is_current(run_id):
            logger.warning(f"Run {run_id}: discarding listing from a superseded run")
            return self.state

        if result.ok:
            self._listing = result.value
            self._advance(run_id, StageEvent.LISTING_READY)
        else:
            self._fail(run_id, result.error)
        return self.state

    def reset(self) -> None:
        run_id = self._new_run_id()
        self._designs.clear()
        self._mockups.clear()
        self.store.clear()
        self._listing = None
        self._error = None
        self._selections = None
        self._set_stage(run_id, transition(self._stage, StageEvent.RESET))

    # -- internals -----------------------------------------------------------

    def _publish(self, run_id: int, candidate: Candidate) -> bool:
        """Append `candidate` to its collection unless `run_id` is stale."""
        if not self._is_current(run_id):
            logger.warning(
                f"Dropping {candidate.stage.value} result of superseded run {run_id} "
                f"(current run {self._run_id})"
            )
            return False

        collection = self._designs if candidate.stage is SelectionStage.DESIGN else self._mockups
        collection.append(candidate)
        self.events.emit(CandidateAppended(run_id, candidate, len(collection) - 1))
        return True

    def _advance(self, run_id: int, event: StageEvent) -> None:
        if self._is_current(run_id):
            self._set_stage(run_id, transition(self._stage, event))

    def _fail(self, run_id: int, error: GenError) -> None:
        if not self._is_current(run_id):
            return
        self._error = error
        self._set_stage(run_id, transition(self._stage, StageEvent.BATCH_FAILED), error)

    def _set_stage(self, run_id: int, stage: Stage, error: Optional[GenError] = None) -> None:
        previous, self._stage = self._stage, stage
        if error is not None:
            logger.warning(f"Run {run_id}: {previous.value} -> {stage.value} ({error})")
        else:
            logger.info(f"Run {run_id}: {previous.value} -> {stage.value}")
        self.events.emit(StageChanged(run_id, previous, stage, error))

    def _new_run_id(self) -> int:
        self._run_id += 1
        return self._run_id

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._run_id

    def _candidate_refs(self, stage: SelectionStage) -> Sequence[str]:
        collection = self._designs if stage is SelectionStage.DESIGN else self._mockups
        return [candidate.ref for candidate in collection]


async def _settle(call: Awaitable[GenerationResult]) -> GenerationResult:
    # Gateways classify their own errors; this covers implementations that raise anyway.
    try:
        return await call
    except Exception as exc:
        return Failure(classify_exception(exc))
