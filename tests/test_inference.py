import json
import threading

import httpx
import pytest

from avatarsynth.config import INFERENCE_URL_ENV, InferenceConfig
from avatarsynth.errors import (
    ExternalServiceFailure,
    InferenceResponseError,
    InferenceTimeout,
    InferenceUnavailable,
)
from avatarsynth.inference.client import InferenceClient
from avatarsynth.inference.prompts import negative_prompt, tpose_prompt
from avatarsynth.schemas.features import CharacterType, FeatureProfile, Headwear


def _client(handler, **cfg) -> InferenceClient:
    cfg.setdefault("min_interval_s", 0.0)
    return InferenceClient(
        InferenceConfig(base_url="http://inference.local/", **cfg),
        transport=httpx.MockTransport(handler),
    )


def test_generate_posts_json_and_returns_bytes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"\x89PNG fake")

    with _client(handler, steps=12) as client:
        out = client.generate(client.build_request("a robot", "blurry"))
    assert out == b"\x89PNG fake"
    assert seen["url"] == "http://inference.local/generate"
    assert seen["body"]["prompt"] == "a robot"
    assert seen["body"]["negative_prompt"] == "blurry"
    assert seen["body"]["steps"] == 12
    assert seen["body"]["width"] == 512


@pytest.mark.parametrize(
    "handler, exc",
    [
        (lambda req: httpx.Response(500, text="boom"), InferenceResponseError),
        (lambda req: httpx.Response(200, content=b""), InferenceResponseError),
    ],
)
def test_bad_responses(handler, exc):
    with _client(handler) as client:
        with pytest.raises(exc):
            client.generate(client.build_request("x"))


def test_timeout_maps_to_inference_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with _client(handler) as client:
        with pytest.raises(InferenceTimeout):
            client.generate(client.build_request("x"))


def test_connection_failure_maps_to_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with _client(handler) as client:
        with pytest.raises(InferenceUnavailable) as info:
            client.generate(client.build_request("x"))
    assert isinstance(info.value, ExternalServiceFailure)


def test_unconfigured_client_is_unavailable():
    client = InferenceClient(InferenceConfig())
    assert not client.enabled
    with pytest.raises(InferenceUnavailable):
        client.generate(client.build_request("x"))
    client.close()


def test_saturated_client_gives_up_after_timeout():
    client = _client(lambda req: httpx.Response(200, content=b"ok"), max_concurrency=1, timeout_s=0.05)
    assert client._slots.acquire(blocking=False)
    try:
        with pytest.raises(InferenceUnavailable, match="saturated"):
            client.generate(client.build_request("x"))
    finally:
        client._slots.release()
    assert client.generate(client.build_request("x")) == b"ok"
    client.close()


def test_shared_slots_bound_calls_across_clients():
    shared = threading.BoundedSemaphore(1)

    def ok(request):
        return httpx.Response(200, content=b"ok")

    first = InferenceClient(
        InferenceConfig(base_url="http://inference.local", timeout_s=0.05, min_interval_s=0.0),
        transport=httpx.MockTransport(ok),
        slots=shared,
    )
    second = InferenceClient(
        InferenceConfig(base_url="http://inference.local", timeout_s=0.05, min_interval_s=0.0),
        transport=httpx.MockTransport(ok),
        slots=shared,
    )
    assert shared.acquire(blocking=False)
    try:
        for client in (first, second):
            with pytest.raises(InferenceUnavailable, match="saturated"):
                client.generate(client.build_request("x"))
    finally:
        shared.release()
    assert second.generate(second.build_request("x")) == b"ok"
    first.close()
    second.close()


def test_calls_are_spaced_by_min_interval():
    sleeps = []
    client = InferenceClient(
        InferenceConfig(base_url="http://inference.local", min_interval_s=0.5),
        transport=httpx.MockTransport(lambda req: httpx.Response(200, content=b"ok")),
        clock=lambda: 100.0,
        sleep=sleeps.append,
    )
    client.generate(client.build_request("x"))
    client.generate(client.build_request("x"))
    client.generate(client.build_request("x"))
    assert sleeps == [pytest.approx(0.5), pytest.approx(1.0)]
    client.close()


def test_config_reads_url_from_env(monkeypatch):
    monkeypatch.setenv(INFERENCE_URL_ENV, " http://gpu-box:8188/ ")
    cfg = InferenceConfig.from_env(timeout_s=5)
    assert cfg.base_url == "http://gpu-box:8188"
    assert cfg.enabled and cfg.timeout_s == 5

    monkeypatch.delenv(INFERENCE_URL_ENV)
    assert not InferenceConfig.from_env().enabled
    with pytest.raises(ValueError):
        InferenceConfig(timeout_s=0)


def test_prompts_describe_the_character():
    profile = FeatureProfile(
        character_type=CharacterType.ROBOT,
        headwear=Headwear(present=True, type="military_helmet", color="black"),
    )
    prompt = tpose_prompt(profile)
    assert prompt.startswith("front view of the same robot character, T-pose")
    assert "wearing military helmet" in prompt
    assert "complete arms, legs, hands" in prompt
    neg = negative_prompt(profile)
    assert "crossed arms" in neg
    assert neg.endswith("organic skin")
