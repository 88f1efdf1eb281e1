"""
Generative image service client.

POSTs an ``InferenceRequest`` as JSON to ``{base_url}/generate`` and returns
the raw image bytes of the response. Calls are bounded (a semaphore caps
in-flight requests), rate limited (minimum spacing between call starts) and
timed out. Batch runs pass one manager-backed semaphore to every worker
process so the in-flight cap holds across processes. Every failure surfaces
as an ``ExternalServiceFailure`` subclass.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import httpx
from pydantic import BaseModel, Field

from ..config import InferenceConfig
from ..errors import InferenceResponseError, InferenceTimeout, InferenceUnavailable

logger = logging.getLogger(__name__)


class InferenceRequest(BaseModel):
    prompt: str
    negative_prompt: str = ""
    width: int = Field(default=512, gt=0)
    height: int = Field(default=512, gt=0)
    steps: int = Field(default=30, gt=0)
    guidance_scale: float = 7.5


def inference_healthy(base_url: str, timeout_s: float = 3.0) -> bool:
    """Synchronous reachability probe for the CLI banner."""
    try:
        r = httpx.get(f"{base_url.rstrip('/')}/health", timeout=timeout_s)
        return r.status_code == 200
    except httpx.HTTPError:
        return False


class InferenceClient:
    def __init__(
        self,
        cfg: InferenceConfig,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        slots=None,
    ):
        self.cfg = cfg
        self._clock = clock
        self._sleep = sleep
        # Anything with acquire(timeout=)/release(), e.g. a multiprocessing.Manager semaphore.
        self._slots = slots if slots is not None else threading.BoundedSemaphore(cfg.max_concurrency)
        self._rate_lock = threading.Lock()
        self._next_start = 0.0
        self._http: httpx.Client | None = None
        if cfg.enabled:
            self._http = httpx.Client(base_url=cfg.base_url, timeout=cfg.timeout_s, transport=transport)

    @property
    def enabled(self) -> bool:
        return self._http is not None

    def build_request(self, prompt: str, negative_prompt: str = "") -> InferenceRequest:
        return InferenceRequest(
            prompt=prompt,
            negative_prompt=negative_prompt,
            width=self.cfg.width,
            height=self.cfg.height,
            steps=self.cfg.steps,
            guidance_scale=self.cfg.guidance_scale,
        )

    def _wait_turn(self) -> None:
        with self._rate_lock:
            now = self._clock()
            start = max(now, self._next_start)
            self._next_start = start + self.cfg.min_interval_s
        delay = start - now
        if delay > 0:
            self._sleep(delay)

    def generate(self, request: InferenceRequest) -> bytes:
        if self._http is None:
            raise InferenceUnavailable("Inference service is not configured")

        # Waiting longer than one call timeout for a slot counts as saturation.
        if not self._slots.acquire(timeout=self.cfg.timeout_s):
            raise InferenceUnavailable(f"Inference service saturated ({self.cfg.max_concurrency} calls in flight)")
        try:
            self._wait_turn()
            logger.debug("POST %s/generate (%dx%d, %d steps)", self.cfg.base_url, request.width, request.height, request.steps)
            r = self._http.post("/generate", json=request.model_dump())
        except httpx.TimeoutException as exc:
            raise InferenceTimeout(f"Inference call timed out after {self.cfg.timeout_s:g}s") from exc
        except httpx.HTTPError as exc:
            raise InferenceUnavailable(f"Inference call failed: {type(exc).__name__}: {exc}") from exc
        finally:
            self._slots.release()

        if r.status_code != 200:
            raise InferenceResponseError(f"Inference service returned HTTP {r.status_code}")
        if not r.content:
            raise InferenceResponseError("Inference service returned an empty body")
        return r.content

    def close(self) -> None:
        if self._http is not None:
            self._http.close()

    def __enter__(self) -> "InferenceClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
