from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class ProductCategory(str, Enum):
    """Selects the mockup prompt table for a product type."""

    MUG = "mug"
    GIFT_BOX = "gift_box"


@dataclass(frozen=True)
class ProductTypeOption:
    name: str
    shelf: str
    category: ProductCategory = ProductCategory.MUG


@dataclass(frozen=True)
class ColorSchemeOption:
    name: str
    colors: Tuple[str, ...]


INSPIRATIONS: Tuple[str, ...] = (
    "Diwali",
    "Holi",
    "Christmas",
    "Rangoli",
    "Mandala",
    "Lotus",
    "Peacock",
    "Henna/Mehndi",
    "Ganesh",
    "Sanskrit",
    "Nature",
    "Geometric",
    "Floral",
    "Celestial",
)

PRODUCT_TYPES: Tuple[ProductTypeOption, ...] = (
    ProductTypeOption("Ornament", "Decor"),
    ProductTypeOption("Wreath", "Decor"),
    ProductTypeOption("Wall Art", "Decor"),
    ProductTypeOption("Poster", "Decor"),
    ProductTypeOption("Candle Holder", "Decor"),
    ProductTypeOption("Mug", "Kitchenware"),
    ProductTypeOption("T-Shirt", "Apparel"),
    ProductTypeOption("Throw Pillow", "Home"),
    ProductTypeOption("Tote Bag", "Accessories"),
    ProductTypeOption("Sticker", "Accessories"),
    ProductTypeOption("Phone Case", "Accessories"),
    ProductTypeOption("Notebook", "Stationery"),
    ProductTypeOption("Greeting Card", "Stationery"),
    ProductTypeOption("Gift Box", "Gifting", ProductCategory.GIFT_BOX),
)

COLOR_SCHEMES: Tuple[ColorSchemeOption, ...] = (
    ColorSchemeOption("Warm Sunset", ("#FF6B35", "#F7931E", "#FDC830")),
    ColorSchemeOption("Cool Ocean", ("#0077BE", "#00B4D8", "#90E0EF")),
    ColorSchemeOption("Royal Purple", ("#6A0572", "#AB83A1", "#E5D4E8")),
    ColorSchemeOption("Forest Green", ("#2D6A4F", "#52B788", "#95D5B2")),
    ColorSchemeOption("Festive Red", ("#C1121F", "#FF6B6B", "#FFE5EC")),
    ColorSchemeOption("Elegant Gold", ("#C9A227", "#FFD700", "#FFF8DC")),
    ColorSchemeOption("Pastel Dream", ("#FFB3BA", "#BAFFC9", "#BAE1FF")),
    ColorSchemeOption("Monochrome", ("#1A1A1A", "#757575", "#E0E0E0")),
)

DESIGN_CONCEPTS: Tuple[str, ...] = (
    "Minimalist Vector",
    "Detailed Illustration",
    "Typography Art",
    "Quirky & Fun",
    "Simple Line Art",
)

_PRODUCT_CATEGORY_BY_NAME: Dict[str, ProductCategory] = {
    option.name.lower(): option.category for option in PRODUCT_TYPES
}

CATEGORY_FIELDS = ("inspirations", "product_types", "color_schemes", "design_concepts")


def product_category_for(product_type: str) -> ProductCategory:
    """Product types outside the catalog fall back to the mug table."""
    return _PRODUCT_CATEGORY_BY_NAME.get(product_type.strip().lower(), ProductCategory.MUG)


def resolve_product_category(product_types: Iterable[str]) -> ProductCategory:
    """The first product type the catalog knows decides the category."""
    for product_type in product_types:
        if product_type.strip().lower() in _PRODUCT_CATEGORY_BY_NAME:
            return product_category_for(product_type)
    return ProductCategory.MUG


@dataclass(frozen=True)
class Selections:
    """
    Read-only snapshot of a `SelectionSet`, handed to every generation call.
    """

    inspirations: Tuple[str, ...] = ()
    product_types: Tuple[str, ...] = ()
    color_schemes: Tuple[str, ...] = ()
    design_concepts: Tuple[str, ...] = ()
    # Derived from product_types when not given.
    product_category: Optional[ProductCategory] = None

    def __post_init__(self) -> None:
        if self.product_category is None:
            object.__setattr__(self, "product_category", resolve_product_category(self.product_types))

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in CATEGORY_FIELDS)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "inspirations": list(self.inspirations),
            "productTypes": list(self.product_types),
            "colorSchemes": list(self.color_schemes),
            "designConcepts": list(self.design_concepts),
        }


@dataclass
class SelectionSet:
    """
    The user's chosen attribute tags.

    Tags are kept in the order they were picked and never repeated within a
    category.
    """

    inspirations: List[str] = field(default_factory=list)
    product_types: List[str] = field(default_factory=list)
    color_schemes: List[str] = field(default_factory=list)
    design_concepts: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        for name in CATEGORY_FIELDS:
            setattr(self, name, list(dict.fromkeys(getattr(self, name))))

    def toggle(self, category: str, tag: str) -> bool:
        """Add `tag` if absent, remove it if present. Returns True if now selected."""
        tags = self._tags(category)
        if tag in tags:
            tags.remove(tag)
            return False
        tags.append(tag)
        return True

    def clear(self) -> None:
        for name in CATEGORY_FIELDS:
            getattr(self, name).clear()

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in CATEGORY_FIELDS)

    def snapshot(self) -> Selections:
        return Selections(
            inspirations=tuple(self.inspirations),
            product_types=tuple(self.product_types),
            color_schemes=tuple(self.color_schemes),
            design_concepts=tuple(self.design_concepts),
        )

    def _tags(self, category: str) -> List[str]:
        if category not in CATEGORY_FIELDS:
            raise ValueError(
                f"Unknown selection category {category!r}; expected one of {', '.join(CATEGORY_FIELDS)}"
            )
        return getattr(self, category)
