"""Administrative routes for paperchat."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from paperchat.api.dependencies import get_app_settings, get_llm_client
from paperchat.core.config import PROFILE_KEYS, Settings
from paperchat.core.errors import LLMRequestError, PaperchatError
from paperchat.core.metrics import metrics_response
from paperchat.llm.client import LLMClient
from paperchat.llm.profiles import default_level, detect_provider, reasoning_options, supports_reasoning
from paperchat.models.dto import ConnectionTestResponse, ReasoningOptionResponse, ReasoningOptionsResponse

router = APIRouter()


@router.get("/reasoning/options", response_model=ReasoningOptionsResponse, summary="Reasoning levels for a model")
async def get_reasoning_options(model: str = Query(..., min_length=1)) -> ReasoningOptionsResponse:
    provider = detect_provider(model)
    level = default_level(provider, model)
    return ReasoningOptionsResponse(
        model=model,
        provider=provider.value,
        supports_reasoning=supports_reasoning(provider, model),
        default_level=level.value if level else None,
        options=[
            ReasoningOptionResponse(level=option.level.value, label=option.label, enabled=option.enabled)
            for option in reasoning_options(provider, model)
        ],
    )


@router.post("/profiles/{key}/test", response_model=ConnectionTestResponse, summary="Test a model profile")
def test_profile(
    key: str,
    settings: Settings = Depends(get_app_settings),
    client: LLMClient = Depends(get_llm_client),
) -> ConnectionTestResponse:
    if key not in PROFILE_KEYS:
        raise HTTPException(status_code=404, detail="Profile not found")
    profile = settings.profile(key)
    try:
        reply = client.test_connection(profile)
    except LLMRequestError as exc:
        return ConnectionTestResponse(ok=False, profile=key, model=profile.model, error=exc.short_message())
    except PaperchatError as exc:
        return ConnectionTestResponse(ok=False, profile=key, model=profile.model, error=str(exc))
    return ConnectionTestResponse(ok=True, profile=key, model=profile.model, reply=reply)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
