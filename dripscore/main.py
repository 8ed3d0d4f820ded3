import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy import select

from .database import Base, SessionLocal, engine
from .models import DailyUsage, StyleAnalysis
from .schemas import AnalysisRecordOut, UserStats
from .stats import compute_user_stats
from .vision import analyze_outfit

TEMPLATES_DIR = Path(__file__).parent / "templates"
MAX_IMAGE_BYTES = 20 * 1024 * 1024  # 20 MB (Gemini inline limit)
ALLOWED_IMAGE_TYPES = {
    "image/jpeg", "image/png", "image/webp", "image/heic", "image/heif",
}
STYLE_OCCASIONS = (
    "casual", "formal", "business", "party", "date", "streetwear", "athleisure",
)

# --- Rate limiting ---
RATE_LIMIT_PER_IP = os.getenv("RATE_LIMIT_PER_IP", "5/hour")
DAILY_ANALYSIS_CAP = int(os.getenv("DAILY_ANALYSIS_CAP", "150"))

limiter = Limiter(key_func=get_remote_address)


async def _check_daily_cap():
    """Raise 429 if the global daily analysis cap has been reached."""
    today = date.today()
    async with SessionLocal() as session:
        usage = await session.get(DailyUsage, today)
    if usage and usage.count >= DAILY_ANALYSIS_CAP:
        raise HTTPException(
            status_code=429,
            detail="Daily analysis limit reached. Please try again tomorrow.",
        )


async def _increment_daily_counter():
    today = date.today()
    async with SessionLocal() as session:
        usage = await session.get(DailyUsage, today)
        if usage:
            usage.count += 1
        else:
            session.add(DailyUsage(usage_date=today, count=1))
        await session.commit()


def _record_out(analysis: StyleAnalysis) -> AnalysisRecordOut:
    return AnalysisRecordOut(
        id=analysis.id,
        user_id=analysis.user_id,
        created_at=analysis.created_at,
        requested_style=analysis.requested_style,
        total_score=analysis.total_score,
        feedback=analysis.feedback,
        breakdown=json.loads(analysis.breakdown),
        style_tips=json.loads(analysis.style_tips),
        next_level_tips=json.loads(analysis.next_level_tips),
        origin=analysis.origin,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield


app = FastAPI(title="DripScore", lifespan=lifespan)
app.state.limiter = limiter
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    detail = "Rate limit exceeded. Please slow down and try again later."
    if request.headers.get("HX-Request"):
        return Response(
            content=json.dumps({"detail": detail}),
            status_code=429,
            media_type="application/json",
        )
    return templates.TemplateResponse(
        request,
        "error.html",
        {"detail": detail, "status_code": 429},
        status_code=429,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Return HTML error pages for browser requests, JSON for HTMX and the API."""
    if request.headers.get("HX-Request") or request.url.path.startswith(("/api/", "/users/")):
        return Response(
            content=json.dumps({"detail": exc.detail}),
            status_code=exc.status_code,
            media_type="application/json",
        )
    return templates.TemplateResponse(
        request,
        "error.html",
        {"detail": exc.detail, "status_code": exc.status_code},
        status_code=exc.status_code,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    return templates.TemplateResponse(
        request, "index.html", {"occasions": STYLE_OCCASIONS}
    )


@app.post("/analyze")
@limiter.limit(RATE_LIMIT_PER_IP)
async def analyze(
    request: Request,
    image: UploadFile = File(...),
    style: str = Form("casual"),
    user_id: str = Form(...),
):
    # --- Check global daily cap ---
    await _check_daily_cap()

    # --- Validate inputs ---
    user_id = user_id.strip()
    if not user_id or len(user_id) > 64:
        raise HTTPException(status_code=400, detail="A valid user id is required.")

    style = style.strip().lower()
    if style not in STYLE_OCCASIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown style. Choose one of: {', '.join(STYLE_OCCASIONS)}.",
        )

    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400, detail="Only JPEG, PNG, WebP or HEIC images are accepted."
        )

    image_bytes = await image.read()

    if len(image_bytes) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=400, detail="Image must be under 20 MB.")

    if len(image_bytes) == 0:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")

    # --- Call Gemini ---
    try:
        result, raw_text = await analyze_outfit(
            image_bytes, style, mime_type=image.content_type
        )
    except ValueError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Unexpected error during style analysis")
        raise HTTPException(
            status_code=502,
            detail="We had trouble analyzing your outfit. Please try with a clearer photo.",
        ) from exc

    await _increment_daily_counter()

    # --- Persist to DB ---
    payload = result.to_payload()
    analysis_id = str(uuid.uuid4())
    async with SessionLocal() as session:
        analysis = StyleAnalysis(
            id=analysis_id,
            user_id=user_id,
            requested_style=style,
            image_filename=image.filename or "",
            total_score=result.total_score,
            feedback=result.feedback,
            breakdown=json.dumps(payload["breakdown"]),
            style_tips=json.dumps(payload.get("styleTips", [])),
            next_level_tips=json.dumps(payload.get("nextLevelTips", [])),
            origin=result.origin,
            raw_analysis=raw_text,
        )
        session.add(analysis)
        await session.commit()

    # --- Respond ---
    # For HTMX requests: 204 + HX-Redirect causes the browser to navigate.
    # For standard form POST: redirect normally.
    redirect_url = f"/result/{analysis_id}"
    if request.headers.get("HX-Request"):
        return Response(
            status_code=204,
            headers={"HX-Redirect": redirect_url},
        )
    return RedirectResponse(url=redirect_url, status_code=303)


async def _get_analysis(analysis_id: str) -> StyleAnalysis:
    async with SessionLocal() as session:
        analysis = await session.get(StyleAnalysis, analysis_id)
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found.")
    return analysis


@app.get("/result/{analysis_id}", response_class=HTMLResponse)
async def result(request: Request, analysis_id: str):
    analysis = await _get_analysis(analysis_id)
    return templates.TemplateResponse(
        request,
        "result.html",
        {"analysis": _record_out(analysis)},
    )


@app.get("/api/analyses/{analysis_id}")
async def get_analysis(analysis_id: str):
    analysis = await _get_analysis(analysis_id)
    return _record_out(analysis).model_dump(mode="json", by_alias=True)


@app.get("/users/{user_id}/analyses")
async def list_analyses(user_id: str, limit: int = 50):
    async with SessionLocal() as session:
        rows = await session.scalars(
            select(StyleAnalysis)
            .where(StyleAnalysis.user_id == user_id)
            .order_by(StyleAnalysis.created_at.desc())
            .limit(max(1, min(limit, 200)))
        )
        analyses: List[StyleAnalysis] = list(rows)
    return [_record_out(a).model_dump(mode="json", by_alias=True) for a in analyses]


@app.get("/users/{user_id}/stats", response_model=UserStats)
async def user_stats(user_id: str):
    async with SessionLocal() as session:
        rows = await session.execute(
            select(StyleAnalysis.scan_date, StyleAnalysis.total_score)
            .where(StyleAnalysis.user_id == user_id)
        )
        scans = [(row.scan_date, row.total_score) for row in rows]
    return compute_user_stats(scans)
