import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from .config import Settings
from .errors import GenError, classify_exception
from .generator import ImageGenerator
from .listing import Listing, ListingGenerator
from .prompts import build_design_prompt, build_mockup_prompt
from .selection import Selections

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    value: Any  # artifact URL (str) or Listing

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: GenError

    @property
    def ok(self) -> bool:
        return False


GenerationResult = Union[Success, Failure]


class GenerationGateway:
    """
    Single entry point for the three remote generation operations.

    Each call is one logical request with no retries. SDK and HTTP exceptions
    are classified and returned as `Failure`; only invalid arguments raise.
    """

    def __init__(self, images: ImageGenerator, listings: ListingGenerator) -> None:
        self.images = images
        self.listings = listings

    async def generate_design(self, selections: Selections, variation_index: int) -> GenerationResult:
        prompt = build_design_prompt(selections, variation_index)
        return await self._call(
            f"design #{variation_index}",
            lambda: self.images.generate_design(prompt),
        )

    async def generate_mockup(
        self,
        selections: Selections,
        source_artifact: str,
        prompt_index: int,
    ) -> GenerationResult:
        prompt = build_mockup_prompt(selections, prompt_index)
        return await self._call(
            f"{selections.product_category.value} mockup #{prompt_index}",
            lambda: self.images.generate_mockup(prompt, source_artifact),
        )

    async def generate_listing(self, selections: Selections) -> GenerationResult:
        return await self._call("listing", lambda: self.listings.generate(selections))

    @staticmethod
    async def _call(label: str, request: Callable[[], Awaitable[Any]]) -> GenerationResult:
        try:
            value = await request()
        except Exception as exc:
            error = classify_exception(exc)
            logger.warning(f"Generation of {label} failed ({error.kind.value}): {error.message}")
            return Failure(error)

        if isinstance(value, Listing) and not value.is_structured:
            logger.info(f"Generated {label} (unstructured, kept as raw content)")
        else:
            logger.info(f"Generated {label}")
        return Success(value)


def build_gateway(settings: Settings) -> GenerationGateway:
    """
    Wire the OpenAI, Replicate and LangChain clients from `settings`.
    """
    from langchain_openai import ChatOpenAI
    from openai import AsyncOpenAI

    if not settings.openai_api_key:
        raise RuntimeError(
            "OPENAI_API_KEY is not set. A valid API key is required for design and mockup generation."
        )

    replicate_client = None
    if settings.image_backend == "replicate":
        import replicate

        if not settings.replicate_api_token:
            raise RuntimeError(
                "REPLICATE_API_TOKEN is not set. A valid API token is required for the replicate backend."
            )
        replicate_client = replicate.Client(api_token=settings.replicate_api_token)

    images = ImageGenerator(
        openai_client=AsyncOpenAI(api_key=settings.openai_api_key),
        replicate_client=replicate_client,
        backend=settings.image_backend,
        image_model=settings.image_model,
        vision_model=settings.vision_model,
        replicate_model=settings.replicate_model,
    )

    llm_kwargs = {
        "model": settings.listing_model,
        "temperature": 0.9,
        "api_key": settings.listing_api_key or settings.openai_api_key,
    }
    if settings.listing_base_url:
        llm_kwargs["base_url"] = settings.listing_base_url

    return GenerationGateway(images=images, listings=ListingGenerator(llm=ChatOpenAI(**llm_kwargs)))
