"""
Tests for the ComfyUI image service.
"""

import asyncio
import json

import httpx
import pytest

from tool_agent.exceptions import ImageServiceError
from tool_agent.image import ComfyUIImageService, apply_style, sanitize_prompt

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeComfyUI:
    """Minimal ComfyUI HTTP API served through httpx.MockTransport."""

    def __init__(self, healthy=True, queued=0, history_polls=1, outputs=None, delay=0.0):
        self.healthy = healthy
        self.delay = delay
        self.queued = queued
        self.history_polls = history_polls
        self.outputs = outputs if outputs is not None else {
            "7": {"images": [{"filename": "tool-agent_00001_.png", "subfolder": "", "type": "output"}]}
        }
        self.workflows = []
        self.polls = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        path = request.url.path
        if path == "/system_stats":
            return httpx.Response(200 if self.healthy else 503, json={})
        if path == "/queue":
            return httpx.Response(200, json={"queue_running": [], "queue_pending": [[0]] * self.queued})
        if path == "/prompt":
            self.workflows.append(json.loads(request.content)["prompt"])
            return httpx.Response(200, json={"prompt_id": "job-1"})
        if path == "/history/job-1":
            self.polls += 1
            if self.polls < self.history_polls:
                return httpx.Response(200, json={})
            return httpx.Response(200, json={
                "job-1": {"status": {"completed": True}, "outputs": self.outputs},
            })
        if path == "/view":
            assert request.url.params["filename"] == "tool-agent_00001_.png"
            return httpx.Response(200, content=PNG_BYTES)
        return httpx.Response(404)


def make_service(comfy: FakeComfyUI, tmp_path, **kwargs) -> ComfyUIImageService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(comfy.handler))
    return ComfyUIImageService(
        "http://comfy.local:8188/",
        tmp_path / "artifacts",
        poll_interval=0.01,
        client=client,
        **kwargs,
    )


def test_sanitize_prompt():
    assert sanitize_prompt("  a\x00 red   fox  ") == "a red fox"
    assert sanitize_prompt("a red\nfox") == "a redfox"
    assert sanitize_prompt("ab") is None
    assert sanitize_prompt("x" * 1001) is None


def test_apply_style():
    assert apply_style("a fox", None) == "a fox"
    assert apply_style("a fox", "sketch").startswith("a fox, pencil sketch")
    assert apply_style("a fox", "unknown") == "a fox"


@pytest.mark.asyncio
async def test_generate_writes_artifact(tmp_path):
    comfy = FakeComfyUI(history_polls=2)
    service = make_service(comfy, tmp_path)

    artifact = await service.generate("a red fox", "user/1", negative_prompt="blurry", style="anime")

    assert artifact.size_bytes == len(PNG_BYTES)
    assert artifact.filename.startswith("user_1-")
    assert artifact.filename.endswith("-tool-agent_00001_.png")
    with open(artifact.path, "rb") as f:
        assert f.read() == PNG_BYTES

    workflow = comfy.workflows[0]
    assert workflow["2"]["inputs"]["text"].startswith("a red fox, anime style")
    assert workflow["3"]["inputs"]["text"] == "blurry"
    assert service.active_jobs_for("user/1") == 0


@pytest.mark.asyncio
async def test_generate_rejects_bad_prompt(tmp_path):
    comfy = FakeComfyUI()
    service = make_service(comfy, tmp_path)

    with pytest.raises(ImageServiceError):
        await service.generate("  ", "user-1")
    assert comfy.workflows == []


@pytest.mark.asyncio
async def test_generate_service_unavailable(tmp_path):
    service = make_service(FakeComfyUI(healthy=False), tmp_path)

    with pytest.raises(ImageServiceError, match="currently unavailable"):
        await service.generate("a red fox", "user-1")


@pytest.mark.asyncio
async def test_generate_queue_full(tmp_path):
    service = make_service(FakeComfyUI(queued=3), tmp_path, max_queue_size=3)

    with pytest.raises(ImageServiceError, match="Queue is full"):
        await service.generate("a red fox", "user-1")


@pytest.mark.asyncio
async def test_generate_no_image_in_output(tmp_path):
    service = make_service(FakeComfyUI(outputs={"7": {"images": []}}), tmp_path)

    with pytest.raises(ImageServiceError, match="No image in output"):
        await service.generate("a red fox", "user-1")
    assert service.active_jobs_for("user-1") == 0


@pytest.mark.asyncio
async def test_generate_times_out(tmp_path):
    service = make_service(FakeComfyUI(history_polls=10_000), tmp_path, timeout=0.05)

    with pytest.raises(ImageServiceError, match="timed out"):
        await service.generate("a red fox", "user-1")


@pytest.mark.asyncio
async def test_concurrent_requests_respect_owner_limit(tmp_path):
    """Only two jobs per owner are queued, even when requests arrive together."""
    comfy = FakeComfyUI(delay=0.02)
    service = make_service(comfy, tmp_path)

    results = await asyncio.gather(
        *(service.generate("a red fox", "owner-1") for _ in range(5)),
        return_exceptions=True,
    )

    artifacts = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, ImageServiceError)]
    assert len(artifacts) == 2
    assert len(rejected) == 3
    assert all("already have" in str(e) for e in rejected)
    assert len(comfy.workflows) == 2
    assert service.active_jobs_for("owner-1") == 0
