import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import GenErrorKind, GenerationError
from .selection import Selections

_FENCED_JSON = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)
_FENCED_ANY = re.compile(r"```\s*\n(.*?)\n\s*```", re.DOTALL)


@dataclass(frozen=True)
class Listing:
    """
    Marketing listing for the selected products.

    When the model does not answer with a JSON object only `raw_content` is
    set, and the listing is still usable for export.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    features: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    price_range: Optional[str] = None
    raw_content: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return any((self.title, self.description, self.features, self.tags, self.price_range))

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "title": self.title,
            "description": self.description,
            "features": list(self.features),
            "tags": list(self.tags),
            "priceRange": self.price_range,
            "rawContent": self.raw_content,
        }
        return {key: value for key, value in payload.items() if value}


def parse_listing(text: str) -> Listing:
    """
    Parse a model answer into a `Listing`.

    The JSON object may be bare or fenced in a ```json block. Anything that is
    not a JSON object is kept verbatim as `raw_content`.
    """
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    candidate = match.group(1) if match else text

    try:
        payload = json.loads(candidate)
    except ValueError:
        return Listing(raw_content=text)

    if not isinstance(payload, dict):
        return Listing(raw_content=text)

    price = payload.get("priceRange") or payload.get("price_range")
    listing = Listing(
        title=_clean(payload.get("title")),
        description=_clean(payload.get("description")),
        features=tuple(_strings(payload.get("features"))),
        tags=tuple(dict.fromkeys(_strings(payload.get("tags")))),
        price_range=_clean(price),
    )
    if not listing.is_structured:
        return Listing(raw_content=text)
    return listing


class ListingGenerator:
    """
    Adapter for the LLM that writes the product listing.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    async def generate(self, selections: Selections) -> Listing:
        if self.llm is None:
            raise RuntimeError(
                "ListingGenerator.llm is None. Configure a real LLM instance "
                "before calling generate()."
            )

        raw = await self.llm.ainvoke(self._build_prompt(selections))
        text = getattr(raw, "content", None) or ""
        if not isinstance(text, str) or not text.strip():
            raise GenerationError(GenErrorKind.MALFORMED, "Listing model returned no content")

        return parse_listing(text)

    @staticmethod
    def _build_prompt(selections: Selections) -> str:
        """
        The model is asked for a JSON object with the keys:
        title, description, features, tags, priceRange.
        """

        def joined(values: Iterable[str]) -> str:
            return ", ".join(values) or "None"

        return (
            "You are a professional product listing writer. Write a compelling, SEO-optimized "
            "product listing for a print-on-demand product based on these design elements:\n\n"
            f"Inspirations: {joined(selections.inspirations)}\n"
            f"Product Types: {joined(selections.product_types)}\n"
            f"Color Schemes: {joined(selections.color_schemes)}\n"
            f"Design Styles: {joined(selections.design_concepts)}\n\n"
            "Include:\n"
            "1. A catchy product title (50-60 characters)\n"
            "2. A product description (150-200 words) highlighting what makes it unique\n"
            "3. 5-7 key feature bullet points\n"
            "4. SEO tags/keywords\n"
            "5. A recommended price range\n\n"
            "Return ONLY a JSON object with this shape:\n"
            "{\n"
            '  "title": "string",\n'
            '  "description": "string",\n'
            '  "features": ["string"],\n'
            '  "tags": ["string"],\n'
            '  "priceRange": "string"\n'
            "}\n"
        )


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _strings(values: Any) -> Iterable[str]:
    if not isinstance(values, list):
        return []
    return [text for text in (_clean(v) for v in values) if text]
