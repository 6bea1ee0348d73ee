"""AML analysis endpoints."""

from fastapi import APIRouter, Depends, Request

from src.domains.aml.engine import AMLMonitoringEngine
from src.domains.aml.models import AMLTransaction

router = APIRouter(prefix="/api/v1/aml", tags=["aml"])


def get_engine(request: Request) -> AMLMonitoringEngine:
    return request.app.state.aml_engine


@router.post("/analyze")
async def analyze_transaction(
    transaction: AMLTransaction,
    engine: AMLMonitoringEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    result = await engine.analyze_transaction(transaction)
    return result.model_dump(mode="json")


@router.post("/correlate")
async def correlate_transaction(
    transaction: AMLTransaction,
    engine: AMLMonitoringEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    """Share the transaction with the fraud service. Never fails on its account."""
    fraud_result = await engine.share_with_fraud_service(transaction)
    return {
        "transaction_id": transaction.transaction_id,
        "correlated": fraud_result is not None,
        "fraud_result": fraud_result.model_dump(mode="json") if fraud_result else None,
    }


@router.get("/config")
async def get_config(
    engine: AMLMonitoringEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    """Return the active thresholds, weights, and cut points."""
    config = engine.config
    return {
        "config_version": config.version,
        "detectors": [
            {"detector_id": d.detector_id, "pattern_type": d.pattern_type.value}
            for d in engine.detectors
        ],
        "structuring": {
            "single_threshold": config.structuring.single_threshold,
            "daily_aggregate": config.structuring.daily_aggregate,
            "window_hours": config.structuring.window_hours,
            "min_transactions": config.structuring.min_transactions,
        },
        "rapid_movement": {
            "time_window_minutes": config.rapid_movement.time_window_minutes,
            "min_transactions": config.rapid_movement.min_transactions,
            "amount_threshold": config.rapid_movement.amount_threshold,
        },
        "velocity": {
            "hourly_limit": config.velocity.hourly_limit,
            "amount_per_hour": config.velocity.amount_per_hour,
        },
        "high_risk_mccs": sorted(config.high_risk_merchant.high_risk_mccs),
        "round_amount": {
            "threshold_count": config.round_amount.threshold_count,
            "window_hours": config.round_amount.window_hours,
        },
        "pattern_weights": dict(config.aggregation.pattern_weights),
        "risk_level_cut_points": {
            "critical": config.aggregation.critical_min,
            "high": config.aggregation.high_min,
            "medium": config.aggregation.medium_min,
        },
        "action_cut_points": {
            "report_sar": config.aggregation.report_min,
            "review": config.aggregation.review_min,
            "monitor": config.aggregation.monitor_min,
        },
        "analysis_cache_ttl_seconds": config.cache.analysis_ttl_seconds,
    }
