"""Image generation tool."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ...chat.message_model import ContentPart, ImagePart, TextPart
from ..ai_types import ImageService
from ..orchestration.tools.types import ToolOutput, ToolSpec, Toolbox

LOGGER = logging.getLogger(__name__)

GENERATE_IMAGES_SPEC = ToolSpec(
    tool=Toolbox.GENERATE_IMAGES,
    description="Return thoughtful, detailed image prompts.",
    parameters={
        "type": "object",
        "properties": {
            "prompts": {
                "type": "array",
                "description": "A list of detailed prompts describing images to generate.",
                "items": {"type": "string"},
                "minItems": 1,
                "maxItems": 9,
            },
        },
        "required": ["prompts"],
    },
)


class GenerateImagesTool:
    """Generates one image per prompt and returns them inline with the prompts."""

    spec = GENERATE_IMAGES_SPEC

    def __init__(self, service: ImageService, model: str) -> None:
        self._service = service
        self._model = model

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        prompts = [str(prompt) for prompt in arguments["prompts"]]
        contents: list[ContentPart] = []
        for prompt in prompts:
            for data in await self._service.generate_images(self._model, prompt):
                contents.append(ImagePart(data=data, format="png", detail=prompt))
        contents.append(TextPart("\n\n".join(prompts)))
        LOGGER.debug("Generated %s image(s) for %s prompt(s)", len(contents) - 1, len(prompts))
        label = "Generating an image" if len(prompts) == 1 else f"Generating {len(prompts)} images"
        return ToolOutput(contents, label=label)


__all__ = ["GENERATE_IMAGES_SPEC", "GenerateImagesTool"]
