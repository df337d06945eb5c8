"""
Image generation backends.
"""

from .service import (
    STYLE_PRESETS,
    BaseImageService,
    ComfyUIImageService,
    ImageArtifact,
    apply_style,
    sanitize_prompt,
)

__all__ = [
    "STYLE_PRESETS",
    "BaseImageService",
    "ComfyUIImageService",
    "ImageArtifact",
    "apply_style",
    "sanitize_prompt",
]
