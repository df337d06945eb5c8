"""
Image generation through a ComfyUI server.

Flow: health check → queue check → POST /prompt → poll /history/{id} →
GET /view → write the image to the artifacts directory.
"""

import asyncio
import random
import re
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx
import structlog

from ..exceptions import ImageServiceError

logger = structlog.get_logger()

STYLE_PRESETS: dict[str, str] = {
    "realistic": "photorealistic, highly detailed, 8k, professional photography",
    "anime": "anime style, vibrant colors, studio ghibli inspired, detailed",
    "digital-art": "digital art, concept art, artstation trending, highly detailed",
    "oil-painting": "oil painting, classical art style, textured, masterpiece",
    "watercolor": "watercolor painting, soft colors, artistic, flowing",
    "sketch": "pencil sketch, detailed line art, black and white, artistic",
    "3d-render": "3d render, octane render, unreal engine, highly detailed, volumetric lighting",
}

MIN_PROMPT_LENGTH = 3
MAX_PROMPT_LENGTH = 1000
MAX_JOBS_PER_OWNER = 2
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_prompt(prompt: str) -> str | None:
    """Strip control characters and collapse whitespace.

    Returns None when the result is shorter than 3 or longer than 1000
    characters.
    """
    cleaned = re.sub(r"\s+", " ", _CONTROL_CHARS.sub("", prompt or "")).strip()
    if not MIN_PROMPT_LENGTH <= len(cleaned) <= MAX_PROMPT_LENGTH:
        return None
    return cleaned


def apply_style(prompt: str, style: str | None) -> str:
    preset = STYLE_PRESETS.get(style or "")
    return f"{prompt}, {preset}" if preset else prompt


@dataclass(frozen=True)
class ImageArtifact:
    """A generated image written to disk."""

    path: str
    filename: str
    prompt: str
    size_bytes: int


class BaseImageService(ABC):
    """Produces an image for a prompt and returns where it was stored."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        owner_id: str,
        negative_prompt: str | None = None,
        style: str | None = None,
    ) -> ImageArtifact:
        """Generate an image. Raises ImageServiceError on failure."""
        pass

    async def close(self) -> None:
        pass


class ComfyUIImageService(BaseImageService):
    """ComfyUI backend running a turbo checkpoint."""

    def __init__(
        self,
        base_url: str,
        artifacts_dir: str | Path,
        timeout: float = 25.0,
        poll_interval: float = 1.0,
        max_queue_size: int = 10,
        checkpoint: str = "z-image-turbo.safetensors",
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.artifacts_dir = Path(artifacts_dir)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_queue_size = max_queue_size
        self.checkpoint = checkpoint
        self.client_id = f"tool-agent-{uuid4().hex[:12]}"
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._owns_client = client is None
        self._active_jobs: dict[str, str] = {}

    def active_jobs_for(self, owner_id: str) -> int:
        return Counter(self._active_jobs.values())[owner_id]

    async def health_check(self) -> bool:
        """Check if ComfyUI is reachable."""
        try:
            response = await self._client.get(f"{self.base_url}/system_stats", timeout=5.0)
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning("ComfyUI health check failed", error=str(e))
            return False

    async def queue_size(self) -> int:
        response = await self._client.get(f"{self.base_url}/queue", timeout=5.0)
        response.raise_for_status()
        data = response.json()
        return len(data.get("queue_running", [])) + len(data.get("queue_pending", []))

    def build_workflow(
        self,
        prompt: str,
        negative_prompt: str = "",
        width: int = 1024,
        height: int = 1024,
        steps: int = 4,
        seed: int | None = None,
    ) -> dict[str, Any]:
        """Minimal text-to-image workflow graph."""
        if seed is None:
            seed = random.randint(0, 999_999_999)
        return {
            "1": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": self.checkpoint}},
            "2": {"class_type": "CLIPTextEncode", "inputs": {"clip": ["1", 1], "text": prompt}},
            "3": {"class_type": "CLIPTextEncode", "inputs": {"clip": ["1", 1], "text": negative_prompt}},
            "4": {
                "class_type": "EmptyLatentImage",
                "inputs": {"batch_size": 1, "height": height, "width": width},
            },
            "5": {
                "class_type": "KSampler",
                "inputs": {
                    "cfg": 1.0,
                    "denoise": 1.0,
                    "latent_image": ["4", 0],
                    "model": ["1", 0],
                    "negative": ["3", 0],
                    "positive": ["2", 0],
                    "sampler_name": "euler",
                    "scheduler": "simple",
                    "seed": seed,
                    "steps": steps,
                },
            },
            "6": {"class_type": "VAEDecode", "inputs": {"samples": ["5", 0], "vae": ["1", 2]}},
            "7": {
                "class_type": "SaveImage",
                "inputs": {"filename_prefix": "tool-agent", "images": ["6", 0]},
            },
        }

    async def generate(
        self,
        prompt: str,
        owner_id: str,
        negative_prompt: str | None = None,
        style: str | None = None,
    ) -> ImageArtifact:
        cleaned = sanitize_prompt(prompt)
        if cleaned is None:
            raise ImageServiceError("Invalid or empty prompt")
        if self.active_jobs_for(owner_id) >= MAX_JOBS_PER_OWNER:
            raise ImageServiceError(
                f"You already have {MAX_JOBS_PER_OWNER} images generating. Please wait."
            )

        # Slot is held from here until the job finishes or fails
        job_key = uuid4().hex
        self._active_jobs[job_key] = owner_id
        try:
            if not await self.health_check():
                raise ImageServiceError(
                    "Image generation service is currently unavailable. Please try again later."
                )

            try:
                queued = await self.queue_size()
            except httpx.HTTPError as e:
                raise ImageServiceError(f"Could not read the image queue: {e}") from e
            if queued >= self.max_queue_size:
                raise ImageServiceError(f"Queue is full ({queued}/{self.max_queue_size})")

            workflow = self.build_workflow(apply_style(cleaned, style), negative_prompt or "")
            response = await self._client.post(
                f"{self.base_url}/prompt",
                json={"prompt": workflow, "client_id": self.client_id},
                timeout=10.0,
            )
            if not response.is_success:
                raise ImageServiceError(f"Failed to queue prompt: {response.text}")
            prompt_id = response.json()["prompt_id"]

            logger.info("Image queued", owner_id=owner_id, prompt_id=prompt_id, style=style)
            image = await self._wait_for_completion(prompt_id)
            data = await self._download(image)
        finally:
            self._active_jobs.pop(job_key, None)

        artifact = await self._save(owner_id, image["filename"], data, cleaned)
        logger.info("Image generated", owner_id=owner_id, path=artifact.path, size=artifact.size_bytes)
        return artifact

    async def _wait_for_completion(self, prompt_id: str) -> dict[str, str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while loop.time() < deadline:
            try:
                response = await self._client.get(f"{self.base_url}/history/{prompt_id}", timeout=5.0)
            except httpx.HTTPError as e:
                logger.debug("History poll failed", prompt_id=prompt_id, error=str(e))
                await asyncio.sleep(self.poll_interval)
                continue

            entry = response.json().get(prompt_id) if response.is_success else None
            if entry and (entry.get("status") or {}).get("completed"):
                for node_output in (entry.get("outputs") or {}).values():
                    images = node_output.get("images") or []
                    if images:
                        return images[0]
                raise ImageServiceError("No image in output")

            await asyncio.sleep(self.poll_interval)

        raise ImageServiceError("Generation timed out")

    async def _download(self, image: dict[str, str]) -> bytes:
        response = await self._client.get(
            f"{self.base_url}/view",
            params={
                "filename": image["filename"],
                "subfolder": image.get("subfolder", ""),
                "type": image.get("type", "output"),
            },
            timeout=30.0,
        )
        if not response.is_success:
            raise ImageServiceError("Failed to download image")
        return response.content

    async def _save(self, owner_id: str, filename: str, data: bytes, prompt: str) -> ImageArtifact:
        safe_owner = re.sub(r"[^A-Za-z0-9_-]", "_", owner_id)[:64]
        name = f"{safe_owner}-{uuid4().hex[:8]}-{Path(filename).name}"
        path = self.artifacts_dir / name

        def _write() -> None:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return ImageArtifact(path=str(path), filename=name, prompt=prompt, size_bytes=len(data))

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
