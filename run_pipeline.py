import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Sequence

from dotenv import load_dotenv

from design_studio.config import Settings
from design_studio.core import PipelineOrchestrator, Stage
from design_studio.errors import FetchFailed
from design_studio.events import CandidateAppended, PipelineEvent, RequestFailed, StageChanged
from design_studio.export import ExportPackager, write_export
from design_studio.gateway import build_gateway
from design_studio.selection import SelectionSet
from design_studio.store import SelectionStage


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate designs, product mockups and a listing, then export the picks as a ZIP."
    )
    parser.add_argument("--inspiration", action="append", default=[], help="Inspiration theme (repeatable).")
    parser.add_argument("--product-type", action="append", default=[], help="Product type (repeatable).")
    parser.add_argument("--color-scheme", action="append", default=[], help="Color scheme (repeatable).")
    parser.add_argument("--design-concept", action="append", default=[], help="Design style (repeatable).")
    parser.add_argument(
        "--design-picks",
        type=_indices,
        default=[0],
        help="Comma-separated indices of the designs to mock up.",
    )
    parser.add_argument(
        "--mockup-picks",
        type=_indices,
        default=[0],
        help="Comma-separated indices of the mockups to export.",
    )
    parser.add_argument(
        "--mockup-concurrency",
        type=int,
        default=None,
        help="Mockup requests in flight at once (defaults to MOCKUP_CONCURRENCY or 1).",
    )
    parser.add_argument(
        "--output-root",
        type=Path,
        default=Path("outputs"),
        help="Folder where the export archive will be written.",
    )
    return parser.parse_args()


def _indices(value: str) -> List[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated integers, got {value!r}") from None


def print_event(event: PipelineEvent) -> None:
    if isinstance(event, StageChanged):
        suffix = f" ({event.error})" if event.error else ""
        print(f"🔁 [run {event.run_id}] {event.previous.value} → {event.current.value}{suffix}")
    elif isinstance(event, CandidateAppended):
        candidate = event.candidate
        print(f"🎨 [run {event.run_id}] {candidate.stage.value} #{event.position} ready")
    elif isinstance(event, RequestFailed):
        source = f" for design {event.source_ref[:48]}" if event.source_ref else ""
        print(f"⚠️  [run {event.run_id}] {event.stage.value} request {event.index}{source} failed: {event.error}")


def pick(orchestrator: PipelineOrchestrator, stage: SelectionStage, indices: Sequence[int]) -> None:
    candidates = orchestrator.designs if stage is SelectionStage.DESIGN else orchestrator.mockups
    for index in indices:
        if 0 <= index < len(candidates):
            orchestrator.store.select(stage, candidates[index].ref)
        else:
            print(f"⚠️  Ignoring {stage.value} pick {index}: only {len(candidates)} available")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = PipelineOrchestrator(
        gateway=build_gateway(settings),
        mockup_concurrency=args.mockup_concurrency or settings.mockup_concurrency,
    )
    orchestrator.events.subscribe(print_event)

    selection = SelectionSet(
        inspirations=args.inspiration,
        product_types=args.product_type,
        color_schemes=args.color_scheme,
        design_concepts=args.design_concept,
    )
    if selection.is_empty:
        print("📝 No selections given; generating in best-effort mode.")

    state = await orchestrator.run_designs(selection.snapshot())
    if state.stage is Stage.FAILED:
        return 1

    pick(orchestrator, SelectionStage.DESIGN, args.design_picks)
    if not orchestrator.selected_designs():
        print("❌ No valid design picked.")
        return 1

    state = await orchestrator.run_mockups()
    if state.stage is Stage.FAILED:
        return 1

    pick(orchestrator, SelectionStage.MOCKUP, args.mockup_picks)
    if not orchestrator.selected_mockups():
        print("❌ No valid mockup picked.")
        return 1

    state = await orchestrator.run_listing()
    if state.stage is Stage.FAILED:
        return 1
    if state.listing is not None and state.listing.title:
        print(f"📝 Listing: {state.listing.title}")

    try:
        archive = await ExportPackager().build_export(
            orchestrator.selections,
            orchestrator.selected_designs(),
            orchestrator.selected_mockups(),
            state.listing,
        )
    except FetchFailed as exc:
        print(f"❌ Export failed: {exc}")
        return 1

    path = write_export(archive, args.output_root)
    print(f"📦 Export written to {path}")
    return 0


def main() -> None:
    # Load environment variables from a local .env file if present
    # (e.g. OPENAI_API_KEY=sk-...).
    load_dotenv()

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=logging.INFO,
    )

    args = parse_args()
    settings = Settings.from_env()
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
