"""Server-side generation pipeline.

prompt → Replicate image → download → pin image → ERC-721 metadata →
pin metadata → ``{previewURL, tokenURI}``.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from promptmint.models import GenerationResult
from promptmint.services.image_generation.prompt_validator import validate_prompt
from promptmint.services.image_generation.replicate_client import ReplicateClient
from promptmint.services.ipfs.pinata_client import PinataClient

logger = structlog.get_logger(__name__)

NAME_PROMPT_CHARS = 50


def build_metadata(
    prompt: str,
    image_cid: str,
    model: str,
    created_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """ERC-721 metadata document for a generated image."""
    created_at = created_at or datetime.now(timezone.utc)
    short = prompt[:NAME_PROMPT_CHARS] + ("..." if len(prompt) > NAME_PROMPT_CHARS else "")
    return {
        "name": f"AI Generated Art: {short}",
        "description": f'AI-generated artwork created from the prompt: "{prompt}"',
        "image": f"ipfs://{image_cid}",
        "attributes": [
            {"trait_type": "Generation Method", "value": model},
            {"trait_type": "Created At", "value": created_at.date().isoformat()},
            {"trait_type": "Prompt Length", "value": str(len(prompt))},
        ],
        "prompt": prompt,
        "created_at": created_at.isoformat(),
        "generated_by": "PromptMint",
    }


class ImageGenerationPipeline:
    """ImageGenerationService implementation backed by Replicate and Pinata."""

    def __init__(
        self,
        replicate_client: ReplicateClient,
        pinata_client: PinataClient,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.replicate_client = replicate_client
        self.pinata_client = pinata_client
        self._clock = clock

    async def generate(self, prompt: str) -> GenerationResult:
        """Generate, pin and describe an image for ``prompt``.

        Raises:
            PromptRejectedError: Prompt failed server-side validation
            ServiceError: Coded generation or IPFS failure
        """
        validate_prompt(prompt)

        start_time = time.time()
        logger.info("pipeline.started", prompt_length=len(prompt))

        image_url = await self.replicate_client.generate_image(prompt)
        logger.info("pipeline.image_generated", image_url=image_url)

        image_data = await self.pinata_client.download(image_url)
        image_cid = await self.pinata_client.upload_image(image_data, prompt)
        metadata = build_metadata(
            prompt, image_cid, self.replicate_client.model, self._clock()
        )
        metadata_cid = await self.pinata_client.upload_metadata(metadata, prompt)

        result = GenerationResult(
            image_url=self.pinata_client.get_gateway_url(image_cid),
            token_uri=f"ipfs://{metadata_cid}",
        )

        logger.info(
            "pipeline.completed",
            image_cid=image_cid,
            metadata_cid=metadata_cid,
            duration_seconds=time.time() - start_time,
        )
        return result
