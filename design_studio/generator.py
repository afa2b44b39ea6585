import logging
from dataclasses import dataclass
from typing import Any, Optional

from .errors import GenErrorKind, GenerationError

logger = logging.getLogger(__name__)

DEFAULT_SIZE = "1024x1024"
IMAGE_BACKENDS = ("openai", "replicate")


@dataclass
class ImageGenerator:
    """
    Adapter for the hosted image models.

    `openai` renders with the OpenAI images API and returns a base64 PNG data
    URI. `replicate` renders with an Imagen model on Replicate and returns the
    URL of the produced file. Mockups always go through the OpenAI vision model
    first to describe the source design.
    """

    openai_client: Any
    replicate_client: Optional[Any] = None
    backend: str = "openai"
    image_model: str = "gpt-image-1"
    vision_model: str = "gpt-4o"
    replicate_model: str = "google/imagen-4-fast"

    def __post_init__(self) -> None:
        if self.backend not in IMAGE_BACKENDS:
            raise ValueError(f"Unknown image backend {self.backend!r}; expected one of {IMAGE_BACKENDS}")
        if self.backend == "replicate" and self.replicate_client is None:
            raise ValueError("The replicate backend needs a replicate client.")

    async def generate_design(self, prompt: str) -> str:
        """Render a design with a transparent background and return its artifact URL."""
        return await self._render(prompt, transparent=True)

    async def generate_mockup(self, prompt: str, source_url: str) -> str:
        """
        Render a product mockup of the design at `source_url`.

        The image models cannot take the design as a reference image, so the
        vision model describes it and the description is folded into the prompt.
        """
        description = await self._describe_design(prompt, source_url)
        return await self._render(f"{prompt}. Incorporate this design: {description}", transparent=False)

    async def _describe_design(self, prompt: str, source_url: str) -> str:
        response = await self.openai_client.chat.completions.create(
            model=self.vision_model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": source_url}},
                    ],
                }
            ],
            max_tokens=1024,
        )
        choices = getattr(response, "choices", None) or []
        description = choices[0].message.content if choices else None
        if not description:
            raise GenerationError(GenErrorKind.MALFORMED, "Vision model returned no design description")
        return description.strip()

    async def _render(self, prompt: str, transparent: bool) -> str:
        if self.backend == "replicate":
            return await self._replicate_generate(prompt)
        return await self._openai_generate(prompt, transparent=transparent)

    async def _openai_generate(self, prompt: str, transparent: bool) -> str:
        params = {
            "model": self.image_model,
            "prompt": prompt,
            "n": 1,
            "size": DEFAULT_SIZE,
            "quality": "high",
            "output_format": "png",
        }
        if transparent:
            params["background"] = "transparent"

        response = await self.openai_client.images.generate(**params)

        data = getattr(response, "data", None) or []
        b64 = data[0].b64_json if data else None
        if not b64:
            raise GenerationError(GenErrorKind.MALFORMED, "Image response contained no image data")
        return f"data:image/png;base64,{b64}"

    async def _replicate_generate(self, prompt: str) -> str:
        output = await self.replicate_client.async_run(
            self.replicate_model,
            input={
                "prompt": prompt,
                "aspect_ratio": "1:1",
                "output_format": "png",
            },
        )

        # Some models return a list of files.
        if isinstance(output, (list, tuple)):
            output = output[0] if output else None

        url = getattr(output, "url", None) or (output if isinstance(output, str) else None)
        if not url:
            raise GenerationError(GenErrorKind.MALFORMED, "Replicate returned no output file")
        return str(url)
