import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .generator import IMAGE_BACKENDS


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None
    image_backend: str = "openai"
    image_model: str = "gpt-image-1"
    vision_model: str = "gpt-4o"
    replicate_model: str = "google/imagen-4-fast"
    listing_model: str = "gpt-4o-mini"
    # Any OpenAI-compatible gateway, e.g. one fronting Gemini.
    listing_base_url: Optional[str] = None
    listing_api_key: Optional[str] = None
    mockup_concurrency: int = 1

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Read settings from the environment. Callers load `.env` first.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        backend = env.get("IMAGE_BACKEND", defaults.image_backend).strip().lower()
        if backend not in IMAGE_BACKENDS:
            raise ValueError(f"IMAGE_BACKEND must be one of {IMAGE_BACKENDS}, got {backend!r}")

        raw_concurrency = env.get("MOCKUP_CONCURRENCY", str(defaults.mockup_concurrency))
        try:
            concurrency = int(raw_concurrency)
        except ValueError:
            raise ValueError(f"MOCKUP_CONCURRENCY must be an integer, got {raw_concurrency!r}") from None
        if concurrency < 1:
            raise ValueError("MOCKUP_CONCURRENCY must be at least 1")

        return cls(
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            replicate_api_token=env.get("REPLICATE_API_TOKEN") or None,
            image_backend=backend,
            image_model=env.get("IMAGE_MODEL") or defaults.image_model,
            vision_model=env.get("VISION_MODEL") or defaults.vision_model,
            replicate_model=env.get("REPLICATE_MODEL") or defaults.replicate_model,
            listing_model=env.get("LISTING_MODEL") or defaults.listing_model,
            listing_base_url=env.get("LISTING_BASE_URL") or None,
            listing_api_key=env.get("LISTING_API_KEY") or None,
            mockup_concurrency=concurrency,
        )
