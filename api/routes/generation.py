"""
api/routes/generation.py -- Pass-through endpoints to the text-generation provider.

Routes:
  POST /chat     -- free-form question, 1..1000 chars
  POST /diet     -- caller-supplied diet prompt
  POST /workout  -- weekly workout plan from gender/age/goal/level

All three share the API rate limit (API_RATE_LIMIT, default 20/minute per IP).
Handlers are sync so the outbound HTTP call runs in the thread pool and is
bounded by GENERATION_TIMEOUT_SECONDS. UpstreamUnavailable propagates to the
503 handler in api/main.py; nothing here retries.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from api.limiter import API_LIMIT, limiter
from api.models import ChatRequest, DietRequest, GenerationResponse, WorkoutRequest
from core.generation import GenerationClient, build_workout_prompt

router = APIRouter()


def _get_generator(request: Request) -> GenerationClient:
    generator: GenerationClient | None = getattr(request.app.state, "generator", None)
    if generator is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "ai_not_configured", "message": "AI service not available."},
        )
    return generator


@limiter.limit(API_LIMIT)
@router.post("/chat", response_model=GenerationResponse)
def chat(request: Request, body: ChatRequest) -> GenerationResponse:
    return GenerationResponse(reply=_get_generator(request).generate(body.message))


@limiter.limit(API_LIMIT)
@router.post("/diet", response_model=GenerationResponse)
def diet(request: Request, body: DietRequest) -> GenerationResponse:
    return GenerationResponse(reply=_get_generator(request).generate(body.prompt))


@limiter.limit(API_LIMIT)
@router.post("/workout", response_model=GenerationResponse)
def workout(request: Request, body: WorkoutRequest) -> GenerationResponse:
    """Generate a weekly plan in Markdown; meal plans are excluded by the prompt."""
    prompt = build_workout_prompt(body.gender, body.age, body.goal, body.level)
    return GenerationResponse(reply=_get_generator(request).generate(prompt))
