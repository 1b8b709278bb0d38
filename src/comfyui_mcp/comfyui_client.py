"""Async ComfyUI client: queue a prompt, then poll its history for a result.

Usage:
    async with ComfyUiClient("http://127.0.0.1:8188") as client:
        prompt_id = await client.submit(graph)
        url = await client.await_result(prompt_id, poll_interval_ms=1000, timeout_ms=60_000)
"""

from __future__ import annotations

import asyncio
import logging
import time

from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlencode

import httpx

from comfyui_mcp.errors import ExecutionCancelled, ExecutionError, ExecutionTimeout
from comfyui_mcp.models import WorkflowGraph

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_TIMEOUT_MS = 5 * 60 * 1000


@runtime_checkable
class ExecutionClient(Protocol):
    async def submit(self, graph: WorkflowGraph) -> str: ...

    async def await_result(
        self,
        job_id: str,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        cancel_event: asyncio.Event | None = None,
    ) -> str: ...


def normalize_base_url(base_url: str) -> str:
    raw = base_url.strip()
    if not raw:
        raise ValueError("ComfyUI URL cannot be empty")
    if "://" not in raw:
        raw = f"http://{raw}"
    return raw.rstrip("/")


def build_image_url(base_url: str, image: dict[str, Any]) -> str:
    params = {"filename": image["filename"]}
    if image.get("subfolder"):
        params["subfolder"] = image["subfolder"]
    if image.get("type"):
        params["type"] = image["type"]
    return f"{base_url}/view?{urlencode(params)}"


def extract_images(outputs: Any) -> list[dict[str, Any]]:
    """Collect ``{"filename", "subfolder", "type"}`` entries from a history ``outputs`` map."""
    images: list[dict[str, Any]] = []
    if not isinstance(outputs, dict):
        return images
    for output in outputs.values():
        if not isinstance(output, dict) or not isinstance(output.get("images"), list):
            continue
        for image in output["images"]:
            if isinstance(image, dict) and image.get("filename"):
                images.append(image)
    return images


class ComfyUiClient:
    """ExecutionClient backed by the ComfyUI HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        client_id: str | None = None,
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url: str = normalize_base_url(base_url)
        self.client_id: str | None = client_id
        self._http: httpx.AsyncClient = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=request_timeout,
            transport=transport,
            headers={"content-type": "application/json"},
        )

    async def __aenter__(self) -> ComfyUiClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request_json(self, method: str, url: str, action: str, **kwargs: Any) -> Any:
        """Send one request; transport failures and non-2xx replies become ``ExecutionError``."""
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ExecutionError(f"ComfyUI request failed while {action}: {e}") from e
        if response.is_error:
            raise ExecutionError(f"ComfyUI returned {response.status_code} while {action}: {response.text[:500]}")
        try:
            return response.json()
        except ValueError as e:
            raise ExecutionError(f"ComfyUI sent a non-JSON reply while {action}.") from e

    async def submit(self, graph: WorkflowGraph) -> str:
        """Queue *graph* for execution and return its prompt id."""
        body: dict[str, Any] = {"prompt": graph.to_prompt()}
        if self.client_id:
            body["client_id"] = self.client_id

        payload = await self._request_json("POST", "/prompt", "queueing the prompt", json=body)
        prompt_id = payload.get("prompt_id") if isinstance(payload, dict) else None
        if not prompt_id:
            raise ExecutionError("ComfyUI did not return a prompt_id.")
        logger.info(f"Queued ComfyUI prompt {prompt_id}")
        return str(prompt_id)

    async def _fetch_history(self, job_id: str) -> dict[str, Any]:
        payload = await self._request_json("GET", f"/history/{job_id}", f"reading history for {job_id}")
        if not isinstance(payload, dict):
            return {}
        entry = payload.get(job_id, payload)
        return entry if isinstance(entry, dict) else {}

    def _result_from_history(self, job_id: str, entry: dict[str, Any]) -> str | None:
        """Return the result URL when *entry* is finished, ``None`` while still running."""
        status = entry.get("status") if isinstance(entry.get("status"), dict) else {}
        if status.get("status_str") == "error":
            raise ExecutionError(f"ComfyUI reported an error for prompt {job_id}.")

        images = extract_images(entry.get("outputs"))
        if status.get("completed") is not True and not images:
            return None
        if not images:
            raise ExecutionError(f"ComfyUI finished prompt {job_id} without producing an image.")
        return build_image_url(self.base_url, images[0])

    async def await_result(
        self,
        job_id: str,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Poll the history of *job_id* until it yields a result reference.

        Raises:
            ExecutionTimeout: *timeout_ms* elapsed before completion.
            ExecutionCancelled: *cancel_event* was set; the remote job keeps running.
            ExecutionError: the remote service reported a failure.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        interval = max(poll_interval_ms, 0) / 1000

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ExecutionCancelled(f"Stopped waiting for prompt {job_id}.")
            if time.monotonic() >= deadline:
                raise ExecutionTimeout(f"Timed out waiting for ComfyUI prompt {job_id}.")

            result = self._result_from_history(job_id, await self._fetch_history(job_id))
            if result is not None:
                return result

            delay = min(interval, max(deadline - time.monotonic(), 0))
            if cancel_event is None:
                await asyncio.sleep(delay)
                continue
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def __repr__(self) -> str:
        return f"ComfyUiClient({self.base_url})"
