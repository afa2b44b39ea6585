from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set


class SelectionStage(str, Enum):
    DESIGN = "design"
    MOCKUP = "mockup"


CandidateProvider = Callable[[SelectionStage], Sequence[str]]


class SelectionStore:
    """
    The artifacts the user picked at the design and mockup stages.

    Candidates are read through `candidates`, supplied by the orchestrator.
    References that are not current candidates are ignored, so every
    operation is a no-op rather than an error for unknown artifacts.
    """

    def __init__(self, candidates: CandidateProvider) -> None:
        self._candidates = candidates
        self._selected: Dict[SelectionStage, Set[str]] = {stage: set() for stage in SelectionStage}

    def toggle(self, stage: SelectionStage, ref: str) -> bool:
        """Flip the selection of `ref`. Returns True if it is selected afterwards."""
        if not self._is_candidate(stage, ref):
            return False
        chosen = self._selected[stage]
        if ref in chosen:
            chosen.discard(ref)
            return False
        chosen.add(ref)
        return True

    def select(self, stage: SelectionStage, ref: str) -> None:
        if self._is_candidate(stage, ref):
            self._selected[stage].add(ref)

    def deselect(self, stage: SelectionStage, ref: str) -> None:
        self._selected[stage].discard(ref)

    def select_all(self, stage: SelectionStage) -> None:
        self._selected[stage] = set(self._candidates(stage))

    def deselect_all(self, stage: SelectionStage) -> None:
        self._selected[stage].clear()

    def is_selected(self, stage: SelectionStage, ref: str) -> bool:
        return ref in self._selected[stage] and self._is_candidate(stage, ref)

    def selected(self, stage: SelectionStage) -> List[str]:
        """Selected references in candidate order."""
        chosen = self._selected[stage]
        return [ref for ref in dict.fromkeys(self._candidates(stage)) if ref in chosen]

    def has_selection(self, stage: SelectionStage) -> bool:
        return bool(self.selected(stage))

    def clear(self, stage: Optional[SelectionStage] = None) -> None:
        stages = [stage] if stage is not None else list(SelectionStage)
        for item in stages:
            self._selected[item].clear()

    def _is_candidate(self, stage: SelectionStage, ref: str) -> bool:
        return ref in self._candidates(stage)
