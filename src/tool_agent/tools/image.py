"""
Image generation tool.
"""

from typing import Any

import structlog

from ..exceptions import ImageServiceError
from ..image.service import BaseImageService
from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()


class GenerateImageTool(BaseTool):
    """Generate an image and hand back the stored artifact."""

    def __init__(self, service: BaseImageService):
        self.service = service

    @property
    def name(self) -> str:
        return "generate_image"

    async def execute(
        self,
        context: ToolContext,
        prompt: str,
        negative_prompt: str | None = None,
        style: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            artifact = await self.service.generate(
                prompt,
                context.owner_id,
                negative_prompt=negative_prompt,
                style=style,
            )
        except ImageServiceError as e:
            logger.warning("Image generation failed", owner_id=context.owner_id, error=str(e))
            return ToolResult.fail(str(e))

        return ToolResult.ok(
            f'Successfully generated image for: "{prompt}"',
            artifact=artifact.path,
            data=artifact,
        )
