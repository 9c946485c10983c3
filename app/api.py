"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    AssetRecord,
    ConsumptionWindowResponse,
    FleetReportResponse,
    RefillEventResponse,
    TankAnalyticsResponse,
)
from services.fleet import FleetAnalyzer, build_default_fleet_analyzer

router = APIRouter()


def get_analyzer() -> FleetAnalyzer:
    return build_default_fleet_analyzer()


def _not_found(exc: KeyError) -> HTTPException:
    detail = exc.args[0] if exc.args else "Asset not found."
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


@router.get(
    "/assets",
    response_model=List[AssetRecord],
    summary="List monitored tanks.",
)
async def list_assets(
    analyzer: FleetAnalyzer = Depends(get_analyzer),
) -> List[AssetRecord]:
    return [AssetRecord.model_validate(asset) for asset in analyzer.registry.list_assets()]


@router.get(
    "/assets/{asset_id}/consumption",
    response_model=ConsumptionWindowResponse,
    summary="Refill-aware daily consumption over a trailing window.",
)
def get_consumption(
    asset_id: str,
    window_days: int = Query(7, ge=1, le=365, description="Trailing window in days."),
    analyzer: FleetAnalyzer = Depends(get_analyzer),
) -> ConsumptionWindowResponse:
    try:
        result = analyzer.consumption(asset_id, window_days)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return ConsumptionWindowResponse.model_validate(result)


@router.get(
    "/assets/{asset_id}/analytics",
    response_model=TankAnalyticsResponse,
    summary="24h/7d/30d consumption, sparkline, trend and forecast for a tank.",
)
def get_tank_analytics(
    asset_id: str,
    analyzer: FleetAnalyzer = Depends(get_analyzer),
) -> TankAnalyticsResponse:
    try:
        analytics = analyzer.analyze_asset(asset_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return TankAnalyticsResponse.model_validate(analytics)


@router.get(
    "/assets/{asset_id}/refills",
    response_model=List[RefillEventResponse],
    summary="Refill events detected over a trailing window.",
)
def get_refills(
    asset_id: str,
    days: int = Query(30, ge=1, le=365),
    analyzer: FleetAnalyzer = Depends(get_analyzer),
) -> List[RefillEventResponse]:
    try:
        events = analyzer.refills(asset_id, days)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return [RefillEventResponse.model_validate(event) for event in events]


@router.get(
    "/fleet/analytics",
    response_model=FleetReportResponse,
    summary="Analytics for every registered tank plus a fleet summary.",
)
def get_fleet_analytics(
    analyzer: FleetAnalyzer = Depends(get_analyzer),
) -> FleetReportResponse:
    return FleetReportResponse.model_validate(analyzer.analyze_fleet())


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
