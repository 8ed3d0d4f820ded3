import base64
import logging
import os
from typing import Tuple

import httpx

from .defaults import default_tips
from .normalizer import normalize, normalize_tips
from .schemas import AnalysisResult, StyleContext

logger = logging.getLogger(__name__)

_GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_URL = (
    f"https://generativelanguage.googleapis.com/v1beta"
    f"/models/{_GEMINI_MODEL}:generateContent"
)

ANALYSIS_PROMPT = """\
You are a fashion expert giving honest, varied feedback on outfits.
You have been given a photo of an outfit. The wearer is dressing for this \
occasion: {style}.

Score the outfit on each category from 1 to 10. DO NOT use the same score for \
every category; vary your scores realistically. Some outfits deserve 9s, \
others 3s or 4s. Be specific about what you actually see in the photo.

Respond ONLY with valid JSON in this exact structure (no markdown, no code fences):
{{
  "totalScore": <integer from 1 to 10>,
  "breakdown": [
    {{"category": "Overall Style", "score": <1-10>, "emoji": "👑", "details": "<one sentence>"}},
    {{"category": "Color Coordination", "score": <1-10>, "emoji": "🎨", "details": "<one sentence>"}},
    {{"category": "Fit & Proportion", "score": <1-10>, "emoji": "📏", "details": "<one sentence>"}},
    {{"category": "Accessories", "score": <1-10>, "emoji": "💍", "details": "<one sentence>"}},
    {{"category": "Trend Alignment", "score": <1-10>, "emoji": "📈", "details": "<one sentence>"}},
    {{"category": "Style Expression", "score": <1-10>, "emoji": "🪄", "details": "<one sentence>"}}
  ],
  "feedback": "<2–3 sentences of overall feedback with specific suggestions>"
}}
"""

TIPS_PROMPT = """\
You are a supportive fashion advisor. The wearer of this outfit is dressing \
for this occasion: {style}.

Give 3 SPECIFIC and ACTIONABLE tips (1-2 sentences each) for each category:
Overall Style, Color Coordination, Fit & Proportion, Accessories, \
Trend Alignment, Style Expression.
Also provide 3-4 "next level" general fashion tips.

Respond ONLY with valid JSON in this exact structure:
{{
  "styleTips": [
    {{"category": "Overall Style", "tips": ["<tip>", "<tip>", "<tip>"]}},
    ...
  ],
  "nextLevelTips": ["<tip>", "<tip>", "<tip>"]
}}
"""


async def invoke_model(
    image_bytes: bytes,
    style_category: str,
    *,
    mime_type: str = "image/jpeg",
    prompt: str = ANALYSIS_PROMPT,
    temperature: float = 0.8,
) -> str:
    """Send the image to Gemini and return the text of the first candidate."""
    api_key = os.getenv("GEMINI_API_KEY", "")
    if not api_key:
        raise ValueError("GEMINI_API_KEY is not configured.")

    image_b64 = base64.b64encode(image_bytes).decode("utf-8")

    payload = {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {
                        "inline_data": {
                            "mime_type": mime_type,
                            "data": image_b64,
                        }
                    },
                    {"text": prompt.format(style=style_category)},
                ],
            }
        ],
        "generationConfig": {
            "temperature": temperature,
            "responseMimeType": "application/json",
        },
    }

    async with httpx.AsyncClient(timeout=90.0) as client:
        try:
            response = await client.post(
                f"{GEMINI_URL}?key={api_key}",
                json=payload,
            )
        except httpx.RequestError as exc:
            raise ValueError(f"Gemini API unreachable: {exc!r}") from exc
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            # Surface the actual Gemini API error message
            try:
                detail = exc.response.json()
                msg = detail.get("error", {}).get("message", str(exc))
            except Exception:
                msg = str(exc)
            raise ValueError(f"Gemini API error ({exc.response.status_code}): {msg}") from exc

    try:
        data = response.json()
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise ValueError(f"Unexpected response from Gemini API: {exc!r}") from exc

    if not isinstance(text, str):
        raise ValueError("Unexpected response from Gemini API: candidate has no text")
    return text


async def analyze_outfit(
    image_bytes: bytes,
    style_category: str,
    *,
    mime_type: str = "image/jpeg",
) -> Tuple[AnalysisResult, str]:
    """Score an outfit photo and attach style tips.

    Returns the normalized result and the raw analysis text as received.
    Errors from the analysis call propagate as ``ValueError``; a failed tips
    call only costs the personalised tips.
    """
    raw_text = await invoke_model(image_bytes, style_category, mime_type=mime_type)
    result = normalize(raw_text, StyleContext(requested_style=style_category))
    logger.info(
        "Outfit scored %d via %s (%d categories)",
        result.total_score, result.origin, len(result.breakdown),
    )

    if result.style_tips:
        return result, raw_text

    try:
        tips_text = await invoke_model(
            image_bytes,
            style_category,
            mime_type=mime_type,
            prompt=TIPS_PROMPT,
            temperature=0.7,
        )
        tips = normalize_tips(tips_text)
    except ValueError:
        logger.warning("Style tips request failed, using default tips", exc_info=True)
        tips = default_tips()

    result = result.model_copy(update={
        "style_tips": tips.style_tips,
        "next_level_tips": result.next_level_tips or tips.next_level_tips or None,
    })
    return result, raw_text
