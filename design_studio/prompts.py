"""
Prompt content for the image stages.

Wording is presentation-layer content; the contracts that matter to the
pipeline are the number of variation hints (one per design request) and the
ten entries of every mockup table.
"""

from typing import Dict, Tuple

from .selection import ProductCategory, Selections

DESIGN_VARIATIONS = 3
MOCKUPS_PER_DESIGN = 10

DEFAULT_STYLE = "Minimalist Vector"

_STYLE_BRIEFS: Dict[str, str] = {
    "Minimalist Vector": (
        "Create a MINIMALIST VECTOR design: bold simple shapes and clean silhouettes, "
        "one to three flat colors, crisp edges suitable for vinyl cutting, geometric simplicity."
    ),
    "Detailed Illustration": (
        "Create a HIGHLY DETAILED ILLUSTRATION: rich textures and depth, vibrant professionally "
        "graded colors, intricate line work, layered composition."
    ),
    "Typography Art": (
        "Create a TYPOGRAPHY-FOCUSED design: decorative hand-lettering is the primary element, "
        "bold and readable, with only small supporting accents."
    ),
    "Quirky & Fun": (
        "Create a QUIRKY, HUMOROUS design: playful stylized illustration, whimsical characters "
        "or concepts, clever unexpected details."
    ),
    "Simple Line Art": (
        "Create a CLEAN LINE ART design: confident smooth lines, outline only or one to two "
        "color fills, elegant minimal composition."
    ),
}

# Index 0 is the standard centered composition.
VARIATION_HINTS: Tuple[str, ...] = (
    "",
    "IMPORTANT VARIATION: use a different layout than a standard centered view, "
    "e.g. a diagonal composition, off-center placement or an unusual perspective.",
    "IMPORTANT VARIATION: change the color emphasis or the scale of the elements, "
    "e.g. a bold scale contrast or an unexpected color distribution.",
)

MUG_PROMPTS: Tuple[str, ...] = (
    "Photorealistic e-commerce photo of an 11oz white ceramic mug with the design printed as a full wrap, "
    "front view, isolated background, studio lighting, 8K",
    "Cozy holiday lifestyle photo of the white mug with the design, hot cocoa with marshmallows, "
    "rustic wooden table, soft bokeh fairy lights, sharp focus on the mug, 8K",
    "Hands holding the white mug with the design on a plush blanket by a fireplace, steam rising, "
    "golden hour light, 8K",
    "Side profile of the 11oz mug showing the design wrapping around the curve, on a saucer with a spoon, "
    "plain white table, studio lighting, 8K",
    "Macro close-up of the design on the ceramic surface, print texture and subtle reflections, 8K",
    "Back view of the mug with the design on a knitted coaster, blurred decorated tree behind, natural light, 8K",
    "Overhead flat lay of the mug with the design surrounded by pine branches, ornaments and ribbon, 8K",
    "The mug with the design on a desk beside a laptop and notebook, morning steam, snowy window light, 8K",
    "Clean product shot of the mug with the design from an alternate angle, soft shadows, white background, 8K",
    "The mug with the design on a breakfast table with croissants and fresh flowers, morning sunlight, 8K",
)

GIFT_BOX_PROMPTS: Tuple[str, ...] = (
    "Front view of a closed gift box wrapped in paper printed with the design, large gold satin bow, "
    "isolated white background, luxury product photography, 8K",
    "Gift box wrapped with the design under a twinkling decorated tree, scattered ornaments, warm lights, 8K",
    "Slightly open gift box showing the design inside and out, half-untied ribbon, tissue paper, "
    "marble table with pinecones, 8K",
    "Three-quarter view of the gift box with the design stacked with smaller gifts on a wooden tray, 8K",
    "Macro close-up of the wrapping paper texture with the design, gold ribbon and tag detail, bokeh, 8K",
    "Flat lay of three gift boxes of different sizes wrapped with the design, holly and bells around, 8K",
    "The gift box with the design on a fireplace mantel beside stockings and candles, warm glow, 8K",
    "The gift box with the design next to a matching mug, cookies and evergreen sprigs on a tray, 8K",
    "Clean e-commerce shot of the gift box with the design from an alternate angle, gold ribbon, "
    "white background, 8K",
    "Festive table setting with the gift box with the design as centerpiece, candles and pine garland, 8K",
)

MOCKUP_PROMPT_TABLES: Dict[ProductCategory, Tuple[str, ...]] = {
    ProductCategory.MUG: MUG_PROMPTS,
    ProductCategory.GIFT_BOX: GIFT_BOX_PROMPTS,
}


def build_design_prompt(selections: Selections, variation_index: int) -> str:
    if not 0 <= variation_index < DESIGN_VARIATIONS:
        raise ValueError(f"variation_index must be in 0..{DESIGN_VARIATIONS - 1}, got {variation_index}")

    style = selections.design_concepts[0] if selections.design_concepts else DEFAULT_STYLE
    brief = _STYLE_BRIEFS.get(style, _STYLE_BRIEFS[DEFAULT_STYLE])

    inspirations = ", ".join(selections.inspirations) or "modern and elegant"
    products = ", ".join(selections.product_types) or "various products"
    colors = ", ".join(selections.color_schemes) or "the best fit for the theme"

    prompt = (
        f"{brief}\n\n"
        "Requirements:\n"
        "- Completely transparent background (PNG)\n"
        "- High resolution, centered and commercially appealing\n"
        f"- Print-on-demand ready for {products}\n\n"
        f"Theme/Inspiration: {inspirations}\n"
        f"Color preference: {colors}"
    )

    hint = VARIATION_HINTS[variation_index]
    if hint:
        prompt += f"\n\n{hint}"
    return prompt


def build_mockup_prompt(selections: Selections, prompt_index: int) -> str:
    table = MOCKUP_PROMPT_TABLES.get(selections.product_category, MUG_PROMPTS)
    if not 0 <= prompt_index < len(table):
        raise ValueError(f"prompt_index must be in 0..{len(table) - 1}, got {prompt_index}")
    return table[prompt_index]
