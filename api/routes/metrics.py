"""
api/routes/metrics.py -- In-process metrics snapshot.

Routes:
  GET /api/metrics  -- counters from app.state.metrics since startup

No authentication, like /api/health: the snapshot holds counts only, never
user data or request paths with ids in them.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Request

from api.models import MetricsData, SuccessEnvelope
from api.responses import ok
from core.metrics import MetricsCollector

router = APIRouter()


@router.get("/metrics", response_model=SuccessEnvelope[MetricsData])
async def metrics(request: Request) -> SuccessEnvelope:
    collector: MetricsCollector = request.app.state.metrics
    return ok(request, MetricsData(**asdict(collector.snapshot())), "Metrics snapshot.")
