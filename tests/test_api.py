import uuid

import pytest

from dripscore import main
from dripscore.normalizer import normalize

RAW = (
    "**Total Score:** 8\n"
    "* **Color Coordination**: 9\n"
    "  * Navy and camel work well.\n"
    "* **Fit & Proportion**: 6\n\n"
    "**Feedback:** Great palette, tailor the trousers."
)

IMAGE = ("fit.jpg", b"\xff\xd8\xff\xe0fakejpeg", "image/jpeg")


@pytest.fixture
def user_id():
    return f"user-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def fake_model(monkeypatch):
    calls = []

    async def fake_analyze_outfit(image_bytes, style_category, *, mime_type="image/jpeg"):
        calls.append((image_bytes, style_category, mime_type))
        return normalize(RAW), RAW

    monkeypatch.setattr(main, "analyze_outfit", fake_analyze_outfit)
    return calls


def _analyze(client, user_id, **kwargs):
    data = {"style": kwargs.pop("style", "casual"), "user_id": user_id}
    return client.post(
        "/analyze",
        files={"image": kwargs.pop("image", IMAGE)},
        data=data,
        follow_redirects=False,
        **kwargs,
    )


def test_index_renders_form(client):
    response = client.get("/")

    assert response.status_code == 200
    assert 'name="image"' in response.text
    assert "Streetwear" in response.text


def test_analyze_stores_and_renders_result(client, fake_model, user_id):
    response = _analyze(client, user_id, style="Formal")

    assert response.status_code == 303
    location = response.headers["location"]
    assert location.startswith("/result/")
    assert fake_model == [(IMAGE[1], "formal", "image/jpeg")]

    page = client.get(location)
    assert page.status_code == 200
    assert "Color Coordination" in page.text
    assert "Navy and camel work well." in page.text

    analysis_id = location.rsplit("/", 1)[1]
    data = client.get(f"/api/analyses/{analysis_id}").json()
    assert data["totalScore"] == 8
    assert data["userId"] == user_id
    assert data["requestedStyle"] == "formal"
    assert data["origin"] == "markdown-fallback"
    assert [c["category"] for c in data["breakdown"]] == ["Color Coordination", "Fit & Proportion"]


def test_htmx_analyze_returns_redirect_header(client, fake_model, user_id):
    response = _analyze(client, user_id, headers={"HX-Request": "true"})

    assert response.status_code == 204
    assert response.headers["HX-Redirect"].startswith("/result/")


def test_history_and_stats(client, fake_model, user_id):
    for _ in range(2):
        assert _analyze(client, user_id).status_code == 303

    history = client.get(f"/users/{user_id}/analyses").json()
    assert len(history) == 2
    assert all(item["userId"] == user_id for item in history)

    stats = client.get(f"/users/{user_id}/stats").json()
    assert stats == {"average_score": 8.0, "best_score": 8, "total_scans": 2, "streak": 1}


def test_stats_for_unknown_user_are_empty(client, user_id):
    stats = client.get(f"/users/{user_id}/stats").json()

    assert stats == {"average_score": 0.0, "best_score": 0, "total_scans": 0, "streak": 0}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"image": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        {"image": ("empty.png", b"", "image/png")},
        {"style": "pajamas"},
    ],
)
def test_analyze_rejects_bad_input(client, fake_model, user_id, kwargs):
    response = _analyze(client, user_id, **kwargs)

    assert response.status_code == 400
    assert fake_model == []


def test_upstream_error_maps_to_502(client, monkeypatch, user_id):
    async def failing(*args, **kwargs):
        raise ValueError("Gemini API error (503): overloaded")

    monkeypatch.setattr(main, "analyze_outfit", failing)

    response = _analyze(client, user_id, headers={"HX-Request": "true"})

    assert response.status_code == 502
    assert response.json() == {"detail": "Gemini API error (503): overloaded"}


def test_unknown_analysis_is_404(client):
    response = client.get("/api/analyses/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"detail": "Analysis not found."}

    page = client.get("/result/does-not-exist")
    assert page.status_code == 404
    assert "Analysis not found." in page.text
