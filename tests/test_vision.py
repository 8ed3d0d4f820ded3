import asyncio
import base64
import json

import httpx
import pytest

from dripscore import vision
from dripscore.defaults import default_tips

ANALYSIS_TEXT = json.dumps({
    "totalScore": 8,
    "breakdown": [
        {"category": "Overall Style", "score": 8, "emoji": "👑", "details": "Sharp."},
        {"category": "Accessories", "score": 5, "emoji": "💍"},
    ],
    "feedback": "Strong base, add a watch.",
})

TIPS_TEXT = json.dumps({
    "styleTips": [{"category": "Accessories", "tips": ["Add a steel watch."]}],
    "nextLevelTips": ["Try monochrome."],
})


def _gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def gemini(monkeypatch):
    """Route Gemini requests to a handler; returns the list of captured payloads."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    calls = []
    handlers = {}
    real_client = httpx.AsyncClient

    def handler(request):
        payload = json.loads(request.content)
        calls.append((request, payload))
        prompt = payload["contents"][0]["parts"][1]["text"]
        kind = "tips" if "styleTips" in prompt else "analysis"
        return handlers[kind](request)

    def fake_client(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", fake_client)
    return calls, handlers


def test_invoke_model_sends_inline_image(gemini):
    calls, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(200, json=_gemini_reply("hello"))

    text = asyncio.run(
        vision.invoke_model(b"\x89PNG", "formal", mime_type="image/png")
    )

    assert text == "hello"
    request, payload = calls[0]
    assert request.url.params["key"] == "test-key"
    inline = payload["contents"][0]["parts"][0]["inline_data"]
    assert inline == {"mime_type": "image/png", "data": base64.b64encode(b"\x89PNG").decode()}
    assert "occasion: formal" in payload["contents"][0]["parts"][1]["text"]


def test_invoke_model_requires_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ValueError, match="GEMINI_API_KEY"):
        asyncio.run(vision.invoke_model(b"img", "casual"))


def test_invoke_model_surfaces_api_error(gemini):
    _, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(
        400, json={"error": {"message": "API key not valid"}}
    )

    with pytest.raises(ValueError, match=r"Gemini API error \(400\): API key not valid"):
        asyncio.run(vision.invoke_model(b"img", "casual"))


def test_invoke_model_rejects_empty_candidates(gemini):
    _, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(200, json={"candidates": []})

    with pytest.raises(ValueError, match="Unexpected response"):
        asyncio.run(vision.invoke_model(b"img", "casual"))


def test_analyze_outfit_combines_analysis_and_tips(gemini):
    calls, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(200, json=_gemini_reply(ANALYSIS_TEXT))
    handlers["tips"] = lambda request: httpx.Response(200, json=_gemini_reply(TIPS_TEXT))

    result, raw = asyncio.run(vision.analyze_outfit(b"img", "date"))

    assert raw == ANALYSIS_TEXT
    assert len(calls) == 2
    assert result.origin == "direct-json"
    assert result.total_score == 7
    assert result.style_tips[0].tips == ["Add a steel watch."]
    assert result.next_level_tips == ["Try monochrome."]


def test_analyze_outfit_skips_tips_call_when_analysis_has_tips(gemini):
    calls, handlers = gemini
    text = json.dumps({
        **json.loads(ANALYSIS_TEXT),
        "styleTips": [{"category": "Fit", "tips": ["Tailor the jacket."]}],
    })
    handlers["analysis"] = lambda request: httpx.Response(200, json=_gemini_reply(text))

    result, _ = asyncio.run(vision.analyze_outfit(b"img", "business"))

    assert len(calls) == 1
    assert result.style_tips[0].category == "Fit"


def test_failed_tips_call_uses_default_tips(gemini):
    _, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(200, json=_gemini_reply(ANALYSIS_TEXT))
    handlers["tips"] = lambda request: httpx.Response(503, json={"error": {"message": "overloaded"}})

    result, _ = asyncio.run(vision.analyze_outfit(b"img", "party"))

    assert result.style_tips == default_tips().style_tips
    assert result.next_level_tips == default_tips().next_level_tips
    assert result.total_score == 7


def test_tips_timeout_uses_default_tips(gemini):
    _, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(200, json=_gemini_reply(ANALYSIS_TEXT))

    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    handlers["tips"] = timeout

    result, raw = asyncio.run(vision.analyze_outfit(b"img", "casual"))

    assert raw == ANALYSIS_TEXT
    assert result.total_score == 7
    assert result.style_tips == default_tips().style_tips
    assert result.next_level_tips == default_tips().next_level_tips


def test_network_error_becomes_value_error(gemini):
    _, handlers = gemini

    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    handlers["analysis"] = refused

    with pytest.raises(ValueError, match="unreachable"):
        asyncio.run(vision.invoke_model(b"img", "casual"))


def test_failed_analysis_call_propagates(gemini):
    _, handlers = gemini
    handlers["analysis"] = lambda request: httpx.Response(500, text="oops")

    with pytest.raises(ValueError, match=r"\(500\)"):
        asyncio.run(vision.analyze_outfit(b"img", "casual"))
