"""
Normalization of style-analysis model output.

The model is asked for JSON but answers in whatever shape it likes: bare
JSON, JSON wrapped in prose or a code fence, or markdown with labelled
scores. ``normalize`` runs an ordered chain of extractors, keeps the first
one that yields a result, then validates and repairs the breakdown. It never
raises; when nothing usable is found the fixed default result is returned.
"""
import json
import logging
import math
import re
import statistics
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from .catalog import CATEGORY_CATALOG, CategoryPattern, emoji_for, find_entry
from .defaults import DEFAULT_FEEDBACK, default_result, default_tips
from .schemas import (
    AnalysisResult,
    CategoryScore,
    StyleContext,
    StyleTipGroup,
    TipsResult,
    clamp,
)

logger = logging.getLogger(__name__)

Catalog = Tuple[CategoryPattern, ...]

NEUTRAL_TOTAL_SCORE = 7
FLAT_SCORE_STDDEV = 0.5
PERTURBATION = (-0.5, 0.0, 0.5, 1.0, -1.0)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n")

# "Total Score: 8", "**Overall Score:** 8", "**Total Score**: 8"
_TOTAL_RE = re.compile(
    r"(?:overall|total)\s+score\s*(?:\*\*\s*:|:\s*\*\*|:)\s*(-?\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
_FEEDBACK_RE = re.compile(
    r"\b(?:summary|overall\s+feedback|feedback)\s*(?:\*\*\s*:|:\s*\*\*|:)\s*"
    r"(.+?)(?=\n[ \t]*\n|\n[ \t]*#|\*\*|\Z)",
    re.IGNORECASE | re.DOTALL,
)
# "**Color Coordination** Tips:" or "**Color Coordination Tips:**"
_TIPS_HEADER_RE = re.compile(
    r"^[ \t]*\*\*(?P<category>[^*\n]+?)"
    r"(?:\*\*[ \t]*Tips?[ \t]*:|[ \t]+Tips?[ \t]*:?[ \t]*\*\*[ \t]*:?)",
    re.IGNORECASE | re.MULTILINE,
)
_NEXT_LEVEL_RE = re.compile(
    r"(?:\*\*[ \t]*Next[- ]Level[^*\n]*\*\*[ \t]*:?|Advanced[ \t]+Tips[ \t]*:)",
    re.IGNORECASE,
)
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s+(.+)$")
_DETAIL_SCORE_RE = re.compile(r"^[\s:]*-?\d+(?:\.\d+)?(?:\s*/\s*10)?")

# Section headers that look like tip groups but are not categories.
_NON_CATEGORY_HEADERS = {"style", "next level", "next-level", "advanced"}

_TIP_KEYWORDS = (
    ("color", "Color & Pattern"),
    ("fit", "Fit & Proportion"),
    ("accessor", "Accessories"),
    ("style", "Style Elements"),
    ("trend", "Trends"),
    ("proportion", "Fit & Proportion"),
    ("pattern", "Color & Pattern"),
    ("texture", "Texture & Material"),
    ("material", "Texture & Material"),
    ("layering", "Styling Technique"),
)
_DEFAULT_TIP_CATEGORY = "Style Elements"

_HIGH_PRIORITY_RE = re.compile(r"\b(?:should|needs?|must|important|essential)\b", re.IGNORECASE)
_LOW_PRIORITY_RE = re.compile(r"\b(?:consider|might|could|optional)\b", re.IGNORECASE)
_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (ValueError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def _json_candidates(text: str) -> Iterator[str]:
    """Yield substrings of ``text`` that may hold a JSON object, best first."""
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        yield text[start:end + 1]

    for match in _FENCE_RE.finditer(text):
        yield match.group(1).strip()

    for block in _BLANK_LINE_RE.split(text):
        block = block.strip()
        if block.startswith("{") and block.endswith("}"):
            yield block


def extract_json_object(
    text: str, accept: Callable[[Dict[str, Any]], bool]
) -> Optional[Dict[str, Any]]:
    """Return the first embedded JSON object in ``text`` that ``accept`` approves."""
    for candidate in _json_candidates(text):
        data = _loads_object(candidate)
        if data is not None and accept(data):
            return data
    return None


def _get(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _has_breakdown(data: Dict[str, Any]) -> bool:
    return isinstance(data.get("breakdown"), list)


# ---------------------------------------------------------------------------
# Coercion of loosely typed values
# ---------------------------------------------------------------------------


def _to_score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = " ".join(value.split())
    return text or None


def _coerce_breakdown(items: List[Any], catalog: Catalog) -> List[CategoryScore]:
    breakdown = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        name = _clean_text(_get(item, "category", "name"))
        score = _to_score(item.get("score"))
        if name is None or score is None or name.casefold() in seen:
            continue
        emoji = _clean_text(item.get("emoji")) or emoji_for(name, catalog)
        try:
            entry = CategoryScore(
                category=name,
                score=score,
                emoji=emoji,
                details=_clean_text(item.get("details")),
            )
        except ValidationError as exc:
            logger.debug("Dropping breakdown entry %r: %s", item, exc)
            continue
        seen.add(name.casefold())
        breakdown.append(entry)
    return breakdown


def _coerce_tip_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [tip for tip in (_clean_text(v) for v in value) if tip]


def _coerce_tip_groups(value: Any) -> List[StyleTipGroup]:
    if not isinstance(value, list):
        return []
    groups = []
    for item in value:
        if not isinstance(item, dict):
            continue
        category = _clean_text(item.get("category"))
        tips = _coerce_tip_list(item.get("tips"))
        if category and tips:
            groups.append(StyleTipGroup(category=category, tips=tips))
    return groups


def _from_json(
    data: Dict[str, Any], origin: str, catalog: Catalog
) -> AnalysisResult:
    total = _to_score(_get(data, "totalScore", "total_score"))
    style_tips = _coerce_tip_groups(_get(data, "styleTips", "style_tips"))
    next_level = _coerce_tip_list(_get(data, "nextLevelTips", "next_level_tips"))
    return AnalysisResult(
        total_score=round_half_up(total) if total is not None else NEUTRAL_TOTAL_SCORE,
        breakdown=_coerce_breakdown(data["breakdown"], catalog),
        feedback=_clean_text(data.get("feedback")) or "",
        style_tips=style_tips or None,
        next_level_tips=next_level or None,
        origin=origin,
    )


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------


def try_direct_json(raw_text: str, catalog: Catalog = CATEGORY_CATALOG) -> Optional[AnalysisResult]:
    data = _loads_object(raw_text.strip())
    if data is None or not _has_breakdown(data):
        return None
    return _from_json(data, "direct-json", catalog)


def try_extracted_json(raw_text: str, catalog: Catalog = CATEGORY_CATALOG) -> Optional[AnalysisResult]:
    data = extract_json_object(raw_text, _has_breakdown)
    if data is None:
        return None
    return _from_json(data, "extracted-json", catalog)


def _details_for(raw_text: str, entry: CategoryPattern) -> Optional[str]:
    match = entry.detail_pattern.search(raw_text)
    if not match:
        return None
    text = _DETAIL_SCORE_RE.sub("", match.group(1), count=1)
    lines = []
    for line in text.splitlines():
        line = line.strip().lstrip("*-•").strip()
        if line:
            lines.append(line)
    return " ".join(lines) or None


def _first_lines(raw_text: str, count: int = 3) -> str:
    lines = [line.strip() for line in raw_text.splitlines() if line.strip()]
    return " ".join(lines[:count])


def _lines_after(text: str, pos: int) -> str:
    newline = text.find("\n", pos)
    return "" if newline == -1 else text[newline + 1:]


def _collect_bullets(text: str) -> List[str]:
    """Collect a run of bullet lines, stopping at the first non-bullet line."""
    tips: List[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            if tips:
                break
            continue
        match = _BULLET_RE.match(line)
        # a bold bullet opens the next section
        if not match or match.group(1).startswith("**"):
            break
        tips.append(" ".join(match.group(1).split()))
    return tips


def _markdown_tip_groups(raw_text: str) -> List[StyleTipGroup]:
    groups = []
    seen = set()
    for match in _TIPS_HEADER_RE.finditer(raw_text):
        category = " ".join(match.group("category").split()).rstrip(":")
        if category.lower() in _NON_CATEGORY_HEADERS or category.casefold() in seen:
            continue
        tips = _collect_bullets(_lines_after(raw_text, match.end()))
        if tips:
            seen.add(category.casefold())
            groups.append(StyleTipGroup(category=category, tips=tips))
    return groups


def _markdown_next_level(raw_text: str) -> List[str]:
    match = _NEXT_LEVEL_RE.search(raw_text)
    if not match:
        return []
    return _collect_bullets(_lines_after(raw_text, match.end()))


def try_markdown_fallback(raw_text: str, catalog: Catalog = CATEGORY_CATALOG) -> Optional[AnalysisResult]:
    """Pull labelled scores out of free text using the category catalog.

    Only categories whose label is followed by a number are included; no
    score is invented for the rest.
    """
    breakdown = []
    for entry in catalog:
        match = entry.score_pattern.search(raw_text)
        if not match:
            continue
        breakdown.append(
            CategoryScore(
                category=entry.category,
                score=float(match.group(1)),
                emoji=entry.emoji,
                details=_details_for(raw_text, entry),
            )
        )
    if not breakdown:
        return None

    total_match = _TOTAL_RE.search(raw_text)
    total = round_half_up(float(total_match.group(1))) if total_match else NEUTRAL_TOTAL_SCORE

    feedback_match = _FEEDBACK_RE.search(raw_text)
    feedback = _clean_text(feedback_match.group(1)) if feedback_match else None

    return AnalysisResult(
        total_score=total,
        breakdown=breakdown,
        feedback=feedback or _first_lines(raw_text),
        style_tips=_markdown_tip_groups(raw_text) or None,
        next_level_tips=_markdown_next_level(raw_text) or None,
        origin="markdown-fallback",
    )


def _dedupe(breakdown: List[CategoryScore]) -> List[CategoryScore]:
    seen = set()
    unique = []
    for item in breakdown:
        key = item.category.casefold()
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def validate_and_repair(result: AnalysisResult) -> AnalysisResult:
    """Enforce the breakdown invariants on an extracted result.

    Flat breakdowns (population std dev below ``FLAT_SCORE_STDDEV``) get the
    positional ``PERTURBATION`` applied. A single-category breakdown has a
    std dev of 0 but is left untouched: there is no spread to judge, so the
    lone score is kept as given. The total is always recomputed from the
    breakdown.
    """
    breakdown = _dedupe(result.breakdown)
    if not breakdown:
        logger.info("Extracted breakdown is empty, using default analysis")
        return default_result()

    scores = [item.score for item in breakdown]
    if len(scores) > 1 and statistics.pstdev(scores) < FLAT_SCORE_STDDEV:
        logger.info("Flat category scores %s, applying perturbation", scores)
        breakdown = [
            item.model_copy(update={
                "score": round(clamp(item.score + PERTURBATION[i % len(PERTURBATION)]), 1)
            })
            for i, item in enumerate(breakdown)
        ]

    total = int(clamp(round_half_up(statistics.fmean(item.score for item in breakdown))))
    return result.model_copy(update={
        "breakdown": breakdown,
        "total_score": total,
        "feedback": result.feedback.strip() or DEFAULT_FEEDBACK,
    })


_STAGES = (try_direct_json, try_extracted_json, try_markdown_fallback)


def normalize(
    raw_text: str,
    context: Optional[StyleContext] = None,
    catalog: Catalog = CATEGORY_CATALOG,
) -> AnalysisResult:
    """Turn raw model output into a validated ``AnalysisResult``. Never raises."""
    style = (context or StyleContext()).requested_style
    if not isinstance(raw_text, str) or not raw_text.strip():
        logger.warning("Empty model response for style %r, using default analysis", style)
        return default_result()

    try:
        for stage in _STAGES:
            result = stage(raw_text, catalog)
            if result is not None:
                logger.debug(
                    "%s matched %d categories for style %r",
                    stage.__name__, len(result.breakdown), style,
                )
                return validate_and_repair(result)
    except Exception:
        logger.exception("Normalization failed for style %r, using default analysis", style)
        return default_result()

    logger.warning("No scores found in model response for style %r, using default analysis", style)
    return default_result()


# ---------------------------------------------------------------------------
# Tips
# ---------------------------------------------------------------------------


def categorize_tip(tip: str) -> str:
    lowered = tip.lower()
    for keyword, category in _TIP_KEYWORDS:
        if keyword in lowered:
            return category
    return _DEFAULT_TIP_CATEGORY


def tip_priority(tip: str) -> str:
    """Rank a tip by its wording: "high", "medium" or "low"."""
    if _HIGH_PRIORITY_RE.search(tip):
        return "high"
    if _LOW_PRIORITY_RE.search(tip):
        return "low"
    return "medium"


def _find_json(raw_text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(raw_text.strip()) or extract_json_object(raw_text, lambda data: True)


def _tips_from_json(raw_text: str) -> Optional[TipsResult]:
    data = _find_json(raw_text)
    if data is None:
        return None
    next_level = _coerce_tip_list(_get(data, "nextLevelTips", "next_level_tips"))
    groups = _coerce_tip_groups(_get(data, "styleTips", "style_tips"))
    if not groups:
        # {"Color Coordination": [...]} or {"color_coordination": "..."}
        for key, value in data.items():
            entry = find_entry(" ".join(key.replace("_", " ").split()))
            tips = _coerce_tip_list(value)
            if entry and tips:
                groups.append(StyleTipGroup(category=entry.category, tips=tips))
    if not groups:
        return None
    return TipsResult(style_tips=groups, next_level_tips=next_level)


def _tips_from_markdown(raw_text: str) -> Optional[TipsResult]:
    groups = _markdown_tip_groups(raw_text)
    if not groups:
        return None
    return TipsResult(style_tips=groups, next_level_tips=_markdown_next_level(raw_text))


def _tips_from_list(raw_text: str) -> Optional[TipsResult]:
    grouped: Dict[str, List[str]] = {}
    for line in raw_text.splitlines():
        match = _BULLET_RE.match(line.strip())
        if match and not match.group(1).startswith("**"):
            tip = " ".join(match.group(1).split())
            grouped.setdefault(categorize_tip(tip), []).append(tip)
    if not grouped:
        return None
    return TipsResult(
        style_tips=[
            StyleTipGroup(
                category=category,
                tips=sorted(tips, key=lambda tip: _PRIORITY_RANK[tip_priority(tip)]),
            )
            for category, tips in grouped.items()
        ]
    )


def normalize_tips(raw_text: str) -> TipsResult:
    """Turn a tips-only model response into grouped tips. Never raises."""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return default_tips()
    try:
        for stage in (_tips_from_json, _tips_from_markdown, _tips_from_list):
            tips = stage(raw_text)
            if tips is not None:
                return tips
    except Exception:
        logger.exception("Tips normalization failed, using default tips")
        return default_tips()
    logger.info("No tips found in model response, using default tips")
    return default_tips()
