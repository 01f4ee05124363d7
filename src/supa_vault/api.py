"""HTTP surface for the admin UI."""

from __future__ import annotations

import threading
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from fastapi import Body, FastAPI, Header, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from supa_vault import __version__
from supa_vault.config import Settings
from supa_vault.contract.pool_contract import from_wei18
from supa_vault.errors import (
    LOCK_REVERTED_MESSAGE,
    ValidationError,
    VaultError,
    humanize_error,
)
from supa_vault.payment.x402 import PaymentVerifier
from supa_vault.services import Services, build_services
from supa_vault.types import ActivityRecord, ActivityType, PoolRole
from supa_vault.utils.logging import get_logger


class PoolStatsBody(BaseModel):
    """Pool totals the UI already shows; used only if the chain read fails."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_available: float | None = Field(default=None, ge=0.0, alias="totalAvailable")
    total_in_position: float | None = Field(default=None, ge=0.0, alias="totalInPosition")


class ActivityIn(BaseModel):
    """Deposit/withdraw reported by the UI after its transaction confirmed."""

    activity_type: Literal["DEPOSIT", "WITHDRAW"]
    role: PoolRole
    amount: str
    tx_hash: str = Field(pattern=r"^0x[0-9a-fA-F]{64}$")
    description: str = Field(default="", max_length=280)

    @field_validator("role", mode="before")
    @classmethod
    def _role_by_name(cls, v: Any) -> Any:
        if isinstance(v, str) and v.upper() in PoolRole.__members__:
            return PoolRole[v.upper()]
        return v

    @field_validator("amount")
    @classmethod
    def _positive_decimal(cls, v: str) -> str:
        try:
            parsed = Decimal(v)
        except InvalidOperation as exc:
            raise ValueError("amount must be a decimal string") from exc
        if not parsed.is_finite() or parsed <= 0:
            raise ValueError("amount must be positive")
        return v


def create_app(
    settings: Settings,
    services: Services | None = None,
    services_factory: Callable[[Settings, PaymentVerifier], Services] = build_services,
) -> FastAPI:
    """Application factory. Collaborators are built on first use."""
    app = FastAPI(title="SupaCron Vault Operator", version=__version__)
    logger = get_logger("supa_vault.api")
    verifier = PaymentVerifier(settings)
    state: dict[str, Services | None] = {"services": services}
    build_lock = threading.Lock()

    def _services() -> Services:
        with build_lock:
            if state["services"] is None:
                state["services"] = services_factory(settings, verifier)
            return state["services"]

    def _failure(
        exc: BaseException,
        event: str,
        reverted_message: str | None = None,
    ) -> JSONResponse:
        if isinstance(exc, ValidationError):
            logger.warning(event, error=exc.reason)
            return JSONResponse({"success": False, "error": exc.reason}, status_code=400)
        if isinstance(exc, VaultError):
            logger.error(event, error=str(exc), error_type=type(exc).__name__)
        else:
            logger.exception(event, error=str(exc))
        kwargs = {"reverted_message": reverted_message} if reverted_message else {}
        return JSONResponse(
            {"success": False, "error": humanize_error(exc, **kwargs)},
            status_code=500,
        )

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True, "service": "supa-vault", "version": __version__}

    @app.post("/api/admin/lock-pool")
    def lock_pool(
        x_payment: str | None = Header(default=None, alias="X-Payment"),
        body: PoolStatsBody | None = Body(default=None),
    ) -> JSONResponse:
        fallback = body.model_dump(by_alias=True, exclude_none=True) if body else None
        try:
            outcome = _services().lock.run(x_payment, fallback_stats=fallback or None)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error.
            return _failure(exc, "lock_pool_failed", reverted_message=LOCK_REVERTED_MESSAGE)

        if outcome.awaiting_payment:
            return JSONResponse(
                {"paymentRequirements": outcome.payment_requirements},
                status_code=402,
            )
        return JSONResponse(
            {
                "success": True,
                "message": outcome.message,
                "txHash": outcome.tx_hash,
                "aiAnalysis": outcome.ai_analysis,
                "orderResult": outcome.order_result,
                "warnings": outcome.warnings,
            }
        )

    @app.post("/api/admin/close-position")
    def close_position() -> JSONResponse:
        try:
            outcome = _services().close.run()
        except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error.
            return _failure(exc, "close_position_failed")
        return JSONResponse(
            {
                "success": True,
                "message": outcome.message,
                "txHash": outcome.tx_hash,
                "closeResult": {
                    **outcome.close_result,
                    "pnl": outcome.pnl_cro,
                    "pnlTxHash": outcome.pnl_tx_hash,
                },
                "warnings": outcome.warnings,
            }
        )

    @app.get("/api/pool-stats")
    def pool_stats() -> JSONResponse:
        try:
            contract = _services().contract
            data = {
                "totalAvailable": float(from_wei18(contract.total_available())),
                "totalInPosition": float(from_wei18(contract.total_in_position())),
                "totalTakerInPosition": float(from_wei18(contract.total_taker_in_position())),
                "totalAbsorberInPosition": float(
                    from_wei18(contract.total_absorber_in_position())
                ),
            }
        except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error.
            return _failure(exc, "pool_stats_failed")
        return JSONResponse({"success": True, "data": data})

    @app.get("/api/activity")
    def recent_activity(limit: int = Query(default=10, ge=1, le=200)) -> JSONResponse:
        try:
            rows = _services().store.load_recent(limit, kind="activity")
        except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error.
            return _failure(exc, "activity_query_failed")
        data = [{**row["payload"], "created_at": row["created_at"]} for row in reversed(rows)]
        return JSONResponse({"success": True, "data": data})

    @app.post("/api/activity")
    def log_activity(activity: ActivityIn) -> JSONResponse:
        record = ActivityRecord(
            activity_type=ActivityType(activity.activity_type),
            role=activity.role,
            amount=float(activity.amount),
            tx_hash=activity.tx_hash,
            description=activity.description,
        )
        try:
            _services().store.record_activity(record)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error.
            return _failure(exc, "activity_record_failed")
        logger.info("activity_recorded", activity_type=activity.activity_type, role=activity.role.name)
        return JSONResponse({"success": True})

    return app
