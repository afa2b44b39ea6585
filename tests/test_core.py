"""
Tests for the stage machine and PipelineOrchestrator: design fan-out,
selection gating, progressive mockups, quota fail-fast, listing and
stale-run handling.
"""

import asyncio

import pytest

from conftest import FakeGateway, failure, make_png_uri
from design_studio.core import (
    Candidate,
    PipelineOrchestrator,
    Stage,
    StageEvent,
    transition,
)
from design_studio.errors import GenErrorKind, InvalidTransition, SelectionRequired
from design_studio.events import CandidateAppended, RequestFailed, StageChanged
from design_studio.gateway import Success
from design_studio.listing import Listing
from design_studio.selection import Selections
from design_studio.store import SelectionStage


async def _designs_ready(orchestrator, selections, picks=(0,)):
    await orchestrator.run_designs(selections)
    for index in picks:
        orchestrator.store.select(SelectionStage.DESIGN, orchestrator.designs[index].ref)


async def _mockups_ready(orchestrator, selections, picks=(0,)):
    await _designs_ready(orchestrator, selections)
    await orchestrator.run_mockups()
    for index in picks:
        orchestrator.store.select(SelectionStage.MOCKUP, orchestrator.mockups[index].ref)


class TestTransition:
    def test_happy_path(self):
        stage = Stage.IDLE
        for event in (
            StageEvent.START_DESIGNS,
            StageEvent.DESIGNS_READY,
            StageEvent.START_MOCKUPS,
            StageEvent.MOCKUPS_READY,
            StageEvent.START_LISTING,
            StageEvent.LISTING_READY,
        ):
            stage = transition(stage, event)
        assert stage is Stage.COMPLETE

    def test_new_run_allowed_from_any_stage(self):
        for stage in Stage:
            assert transition(stage, StageEvent.START_DESIGNS) is Stage.DESIGNING_BATCH

    def test_failure_only_from_in_flight_stages(self):
        assert transition(Stage.MOCKING_BATCH, StageEvent.BATCH_FAILED) is Stage.FAILED
        with pytest.raises(InvalidTransition):
            transition(Stage.AWAITING_DESIGN_SELECTION, StageEvent.BATCH_FAILED)

    def test_listing_not_allowed_from_idle(self):
        with pytest.raises(InvalidTransition):
            transition(Stage.IDLE, StageEvent.START_LISTING)


class TestDesignStage:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("selections", [Selections(), Selections(inspirations=("Holi",))])
    async def test_issues_three_variations(self, selections):
        gateway = FakeGateway()
        orchestrator = PipelineOrchestrator(gateway)

        state = await orchestrator.run_designs(selections)

        assert sorted(index for _, index in gateway.design_calls) == [0, 1, 2]
        assert all(sent is selections for sent, _ in gateway.design_calls)
        assert state.stage is Stage.AWAITING_DESIGN_SELECTION
        assert [c.index for c in state.designs] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_results_kept_in_request_order(self):
        class SlowFirstGateway(FakeGateway):
            async def generate_design(self, selections, variation_index):
                await asyncio.sleep(0.03 - variation_index * 0.01)
                return await super().generate_design(selections, variation_index)

        orchestrator = PipelineOrchestrator(SlowFirstGateway())

        state = await orchestrator.run_designs(Selections())

        assert [c.ref for c in state.designs] == [make_png_uri(i) for i in range(3)]

    @pytest.mark.asyncio
    async def test_partial_success(self):
        gateway = FakeGateway(
            design=lambda i: failure(GenErrorKind.TRANSPORT) if i == 1 else Success(make_png_uri(i))
        )
        orchestrator = PipelineOrchestrator(gateway)

        state = await orchestrator.run_designs(Selections())

        assert state.stage is Stage.AWAITING_DESIGN_SELECTION
        assert [c.index for c in state.designs] == [0, 2]
        assert state.error is None

    @pytest.mark.asyncio
    async def test_all_failed_surfaces_first_error(self):
        kinds = [GenErrorKind.MALFORMED, GenErrorKind.RATE_LIMITED, GenErrorKind.TRANSPORT]
        orchestrator = PipelineOrchestrator(FakeGateway(design=lambda i: failure(kinds[i])))

        state = await orchestrator.run_designs(Selections())

        assert state.stage is Stage.FAILED
        assert state.error.kind is GenErrorKind.MALFORMED
        assert state.designs == ()

    @pytest.mark.asyncio
    async def test_stage_events(self):
        orchestrator = PipelineOrchestrator(FakeGateway())
        changes = []
        orchestrator.events.subscribe(
            lambda event: changes.append(event.current) if isinstance(event, StageChanged) else None
        )

        await orchestrator.run_designs(Selections())

        assert changes == [Stage.DESIGNING_BATCH, Stage.AWAITING_DESIGN_SELECTION]

    @pytest.mark.asyncio
    async def test_broken_listener_does_not_stop_pipeline(self):
        orchestrator = PipelineOrchestrator(FakeGateway())

        def explode(event):
            raise RuntimeError("listener bug")

        orchestrator.events.subscribe(explode)

        state = await orchestrator.run_designs(Selections())

        assert state.stage is Stage.AWAITING_DESIGN_SELECTION


class TestSelectionGating:
    @pytest.mark.asyncio
    async def test_no_design_selected_keeps_stage(self):
        gateway = FakeGateway()
        orchestrator = PipelineOrchestrator(gateway)
        await orchestrator.run_designs(Selections())

        with pytest.raises(SelectionRequired):
            await orchestrator.run_mockups()

        assert orchestrator.stage is Stage.AWAITING_DESIGN_SELECTION
        assert gateway.mockup_calls == []

    @pytest.mark.asyncio
    async def test_mockups_before_any_run_is_invalid(self):
        with pytest.raises(InvalidTransition):
            await PipelineOrchestrator(FakeGateway()).run_mockups()

    @pytest.mark.asyncio
    async def test_no_mockup_selected_blocks_listing(self, christmas_selections):
        gateway = FakeGateway()
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections)
        await orchestrator.run_mockups()

        with pytest.raises(SelectionRequired):
            await orchestrator.run_listing()

        assert orchestrator.stage is Stage.AWAITING_MOCKUP_SELECTION
        assert gateway.listing_calls == []


class TestMockupStage:
    @pytest.mark.asyncio
    async def test_ten_requests_per_selected_design(self, christmas_selections):
        gateway = FakeGateway()
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections, picks=(0, 2))

        state = await orchestrator.run_mockups()

        assert len(gateway.mockup_calls) == 20
        by_design = {}
        for _, source, prompt_index in gateway.mockup_calls:
            by_design.setdefault(source, []).append(prompt_index)
        assert by_design == {
            orchestrator.designs[0].ref: list(range(10)),
            orchestrator.designs[2].ref: list(range(10)),
        }
        assert state.stage is Stage.AWAITING_MOCKUP_SELECTION
        assert len(state.mockups) == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 4])
    async def test_collection_grows_monotonically(self, christmas_selections, concurrency):
        orchestrator = PipelineOrchestrator(FakeGateway(), mockup_concurrency=concurrency)
        await _designs_ready(orchestrator, christmas_selections, picks=(0, 1))
        observed = []

        def record(event):
            if isinstance(event, CandidateAppended) and event.candidate.stage is SelectionStage.MOCKUP:
                observed.append(orchestrator.mockups)

        orchestrator.events.subscribe(record)

        await orchestrator.run_mockups()

        assert [len(snapshot) for snapshot in observed] == list(range(1, 21))
        for earlier, later in zip(observed, observed[1:]):
            assert later[: len(earlier)] == earlier

    @pytest.mark.asyncio
    async def test_rate_limit_stops_remaining_requests(self, christmas_selections):
        gateway = FakeGateway(
            mockup=lambda n, ref, i: failure(GenErrorKind.RATE_LIMITED) if n == 3 else Success(make_png_uri(100 + n))
        )
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections, picks=(0, 1))

        state = await orchestrator.run_mockups()

        assert len(gateway.mockup_calls) == 4
        assert state.stage is Stage.FAILED
        assert state.error.kind is GenErrorKind.RATE_LIMITED
        assert len(state.mockups) == 3

    @pytest.mark.asyncio
    async def test_payment_required_with_concurrency(self, christmas_selections):
        gateway = FakeGateway(
            mockup=lambda n, ref, i: failure(GenErrorKind.PAYMENT_REQUIRED) if n == 2 else Success(make_png_uri(100 + n))
        )
        orchestrator = PipelineOrchestrator(gateway, mockup_concurrency=3)
        await _designs_ready(orchestrator, christmas_selections, picks=(0, 1))

        state = await orchestrator.run_mockups()

        assert state.stage is Stage.FAILED
        assert state.error.kind is GenErrorKind.PAYMENT_REQUIRED
        assert len(gateway.mockup_calls) < 20
        assert len(state.mockups) == len(gateway.mockup_calls) - 1

    @pytest.mark.asyncio
    async def test_other_errors_are_skipped(self, christmas_selections):
        gateway = FakeGateway(
            mockup=lambda n, ref, i: failure(GenErrorKind.TRANSPORT) if i % 2 else Success(make_png_uri(100 + n))
        )
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections)

        state = await orchestrator.run_mockups()

        assert len(gateway.mockup_calls) == 10
        assert state.stage is Stage.AWAITING_MOCKUP_SELECTION
        assert [c.prompt_index for c in state.mockups] == [0, 2, 4, 6, 8]

    @pytest.mark.asyncio
    async def test_failure_events_name_the_source_design(self, christmas_selections):
        second_design = make_png_uri(1)
        gateway = FakeGateway(
            mockup=lambda n, ref, i: failure(GenErrorKind.TRANSPORT) if ref == second_design and i == 3
            else Success(make_png_uri(100 + n))
        )
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections, picks=(0, 1))
        failures = []
        orchestrator.events.subscribe(lambda e: failures.append(e) if isinstance(e, RequestFailed) else None)

        await orchestrator.run_mockups()

        assert [(e.index, e.source_ref) for e in failures] == [(3, second_design)]

    @pytest.mark.asyncio
    async def test_all_failed(self, christmas_selections):
        gateway = FakeGateway(mockup=lambda n, ref, i: failure(GenErrorKind.MALFORMED))
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections)

        state = await orchestrator.run_mockups()

        assert len(gateway.mockup_calls) == 10
        assert state.stage is Stage.FAILED
        assert state.error.kind is GenErrorKind.MALFORMED

    @pytest.mark.asyncio
    async def test_rerun_clears_previous_mockups(self, christmas_selections):
        orchestrator = PipelineOrchestrator(FakeGateway())
        await _mockups_ready(orchestrator, christmas_selections, picks=(1,))

        await orchestrator.run_mockups()

        assert len(orchestrator.mockups) == 10
        assert orchestrator.selected_mockups() == []


class TestListingStage:
    @pytest.mark.asyncio
    async def test_success_completes(self, christmas_selections):
        gateway = FakeGateway()
        orchestrator = PipelineOrchestrator(gateway)
        await _mockups_ready(orchestrator, christmas_selections)

        state = await orchestrator.run_listing()

        assert gateway.listing_calls == [christmas_selections]
        assert state.stage is Stage.COMPLETE
        assert state.listing.title == "Festive Mug"

    @pytest.mark.asyncio
    async def test_raw_listing_completes(self, christmas_selections):
        orchestrator = PipelineOrchestrator(FakeGateway(listing=lambda: Success(Listing(raw_content="plain text"))))
        await _mockups_ready(orchestrator, christmas_selections)

        state = await orchestrator.run_listing()

        assert state.stage is Stage.COMPLETE
        assert state.listing.raw_content == "plain text"

    @pytest.mark.asyncio
    async def test_failure_is_terminal_without_retry(self, christmas_selections):
        gateway = FakeGateway(listing=lambda: failure(GenErrorKind.TRANSPORT))
        orchestrator = PipelineOrchestrator(gateway)
        await _mockups_ready(orchestrator, christmas_selections)

        state = await orchestrator.run_listing()

        assert len(gateway.listing_calls) == 1
        assert state.stage is Stage.FAILED
        assert state.error.kind is GenErrorKind.TRANSPORT
        assert state.listing is None


class TestStaleRuns:
    @pytest.mark.asyncio
    async def test_late_design_results_are_discarded(self):
        release = asyncio.Event()

        class FirstRunBlocks(FakeGateway):
            async def generate_design(self, selections, variation_index):
                self.design_calls.append((selections, variation_index))
                if len(self.design_calls) <= 3:
                    await release.wait()
                    return Success(f"https://old.test/{variation_index}.png")
                return Success(f"https://new.test/{variation_index}.png")

        gateway = FirstRunBlocks()
        orchestrator = PipelineOrchestrator(gateway)

        first = asyncio.create_task(orchestrator.run_designs(Selections(inspirations=("Holi",))))
        while len(gateway.design_calls) < 3:
            await asyncio.sleep(0)

        await orchestrator.run_designs(Selections(inspirations=("Diwali",)))
        release.set()
        await first

        assert [c.ref for c in orchestrator.designs] == [f"https://new.test/{i}.png" for i in range(3)]
        assert orchestrator.run_id == 2
        assert orchestrator.stage is Stage.AWAITING_DESIGN_SELECTION
        assert orchestrator.selections.inspirations == ("Diwali",)

    @pytest.mark.asyncio
    async def test_mockups_arriving_after_reset_are_discarded(self, christmas_selections):
        release = asyncio.Event()

        class BlockingMockups(FakeGateway):
            async def generate_mockup(self, selections, source_artifact, prompt_index):
                self.mockup_calls.append((selections, source_artifact, prompt_index))
                await release.wait()
                return Success(make_png_uri(200 + prompt_index))

        gateway = BlockingMockups()
        orchestrator = PipelineOrchestrator(gateway)
        await _designs_ready(orchestrator, christmas_selections)

        batch = asyncio.create_task(orchestrator.run_mockups())
        while not gateway.mockup_calls:
            await asyncio.sleep(0)

        orchestrator.reset()
        release.set()
        await batch

        assert orchestrator.mockups == ()
        assert orchestrator.stage is Stage.IDLE
        assert len(gateway.mockup_calls) == 1

    def test_publish_rejects_old_run_id(self):
        orchestrator = PipelineOrchestrator(FakeGateway())
        orchestrator.reset()
        old_run = orchestrator.run_id
        orchestrator.reset()

        accepted = orchestrator._publish(
            old_run, Candidate(ref="https://old.test/0.png", stage=SelectionStage.DESIGN, index=0)
        )

        assert accepted is False
        assert orchestrator.designs == ()

    @pytest.mark.asyncio
    async def test_new_run_resets_everything(self, christmas_selections):
        orchestrator = PipelineOrchestrator(FakeGateway())
        await _mockups_ready(orchestrator, christmas_selections)
        await orchestrator.run_listing()

        await orchestrator.run_designs(Selections())

        assert orchestrator.mockups == ()
        assert orchestrator.listing is None
        assert orchestrator.selected_designs() == []
        assert orchestrator.stage is Stage.AWAITING_DESIGN_SELECTION
