"""
Shared fixtures: a scripted in-memory gateway and tiny PNG artifacts.
"""

import base64
import io
from typing import Callable, List, Optional, Tuple

import pytest
from PIL import Image

from design_studio.errors import GenError, GenErrorKind
from design_studio.gateway import Failure, GenerationResult, Success
from design_studio.listing import Listing
from design_studio.selection import SelectionSet, Selections

_COLORS = [(200, 30, 40), (30, 160, 60), (40, 60, 200), (220, 180, 20), (120, 40, 160)]


def make_png_bytes(seed: int = 0) -> bytes:
    img = Image.new("RGB", (4, 4), color=_COLORS[seed % len(_COLORS)])
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def make_png_uri(seed: int = 0) -> str:
    # The seed parameter keeps refs unique even when colors repeat.
    encoded = base64.b64encode(make_png_bytes(seed)).decode("ascii")
    return f"data:image/png;seed={seed};base64,{encoded}"


def failure(kind: GenErrorKind, message: str = "boom") -> Failure:
    return Failure(GenError(kind, message))


class FakeGateway:
    """
    Records every request and answers from scripted callables.

    - design(index) -> GenerationResult
    - mockup(call_number, design_ref, prompt_index) -> GenerationResult
    - listing() -> GenerationResult
    """

    def __init__(
        self,
        design: Optional[Callable[[int], GenerationResult]] = None,
        mockup: Optional[Callable[[int, str, int], GenerationResult]] = None,
        listing: Optional[Callable[[], GenerationResult]] = None,
    ) -> None:
        self.design = design or (lambda index: Success(make_png_uri(index)))
        self.mockup = mockup or (lambda n, ref, index: Success(make_png_uri(100 + n)))
        self.listing = listing or (lambda: Success(Listing(title="Festive Mug", tags=("christmas",))))
        self.design_calls: List[Tuple[Selections, int]] = []
        self.mockup_calls: List[Tuple[Selections, str, int]] = []
        self.listing_calls: List[Selections] = []

    async def generate_design(self, selections: Selections, variation_index: int) -> GenerationResult:
        self.design_calls.append((selections, variation_index))
        return self.design(variation_index)

    async def generate_mockup(
        self, selections: Selections, source_artifact: str, prompt_index: int
    ) -> GenerationResult:
        self.mockup_calls.append((selections, source_artifact, prompt_index))
        return self.mockup(len(self.mockup_calls) - 1, source_artifact, prompt_index)

    async def generate_listing(self, selections: Selections) -> GenerationResult:
        self.listing_calls.append(selections)
        return self.listing()


@pytest.fixture
def png_uri() -> Callable[[int], str]:
    return make_png_uri


@pytest.fixture
def christmas_selections() -> Selections:
    return SelectionSet(
        inspirations=["Christmas"],
        product_types=["Mug"],
        color_schemes=["Festive Red"],
        design_concepts=["Minimalist Vector"],
    ).snapshot()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()
