"""Crypto.com Exchange REST client."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from supa_vault.config import Settings
from supa_vault.errors import ConfigurationError, ExchangeError, NetworkError
from supa_vault.exchange.schemas import (
    ExchangeEnvelope,
    InstrumentSpec,
    OrderAck,
    Position,
    Ticker,
)
from supa_vault.exchange.signing import sign
from supa_vault.types import OrderRequest
from supa_vault.utils.logging import get_logger, log_exchange_call


def _millis() -> int:
    return int(time.time() * 1000)


class ExchangeClient:
    """Signed private calls plus unsigned public market data.

    Private calls are never retried here; the caller decides based on what
    the call does.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.Client | None = None,
        clock_ms: Callable[[], int] = _millis,
    ) -> None:
        self._settings = settings
        self._base_url = settings.cryptocom_base_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=settings.http_timeout)
        self._clock_ms = clock_ms
        self._logger = get_logger("supa_vault.exchange.client")

    def close(self) -> None:
        self._http.close()

    def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Issue one signed private call and return its ``result``."""
        if not self._settings.has_exchange_credentials:
            raise ConfigurationError("Missing Crypto.com API credentials")

        params = params or {}
        nonce = self._clock_ms()
        body = {
            "id": nonce,
            "method": method,
            "api_key": self._settings.cryptocom_api_key,
            "params": params,
            "nonce": nonce,
        }
        body["sig"] = sign(
            method,
            nonce,
            self._settings.cryptocom_api_key,
            params,
            nonce,
            self._settings.cryptocom_api_secret,
        )

        started = time.perf_counter()
        try:
            response = self._http.post(f"{self._base_url}/{method}", json=body)
            payload = response.json()
        except httpx.HTTPError as exc:
            self._log_call(method, started, success=False, reason="transport")
            raise NetworkError(f"{method}: {exc}") from exc
        except ValueError as exc:
            self._log_call(method, started, success=False, reason="non_json")
            raise ExchangeError(method, response.status_code, "non-JSON response") from exc

        result = self._decode(method, payload, http_status=response.status_code)
        self._log_call(method, started, success=True)
        return result

    def public(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Unsigned GET against the public API."""
        started = time.perf_counter()
        try:
            response = self._http.get(f"{self._base_url}/{method}", params=params or {})
            payload = response.json()
        except httpx.HTTPError as exc:
            self._log_call(method, started, success=False, reason="transport")
            raise NetworkError(f"{method}: {exc}") from exc
        except ValueError as exc:
            self._log_call(method, started, success=False, reason="non_json")
            raise ExchangeError(method, response.status_code, "non-JSON response") from exc

        result = self._decode(method, payload, http_status=response.status_code)
        self._log_call(method, started, success=True)
        return result

    # ---- private endpoints ----

    def cancel_all_orders(self, instrument: str) -> Any:
        return self.call("private/cancel-all-orders", {"instrument_name": instrument})

    def get_positions(self, instrument: str | None = None) -> list[Position]:
        params = {"instrument_name": instrument} if instrument else {}
        result = self.call("private/get-positions", params)
        rows = _data_rows("private/get-positions", result)
        try:
            positions = [Position.model_validate(row) for row in rows]
        except PydanticValidationError as exc:
            raise ExchangeError("private/get-positions", -1, f"unexpected shape: {exc}") from exc
        if instrument:
            positions = [p for p in positions if p.instrument_name == instrument]
        return positions

    def create_order(self, order: OrderRequest) -> OrderAck:
        result = self.call("private/create-order", order.to_params())
        return _parse_ack("private/create-order", result)

    def close_position(self, instrument: str) -> OrderAck:
        result = self.call(
            "private/close-position",
            {"instrument_name": instrument, "type": "MARKET"},
        )
        return _parse_ack("private/close-position", result)

    # ---- public endpoints ----

    def get_ticker(self, instrument: str) -> Ticker:
        result = self.public("public/get-tickers", {"instrument_name": instrument})
        rows = _data_rows("public/get-tickers", result)
        for row in rows:
            if row.get("i") == instrument:
                try:
                    return Ticker.model_validate(row)
                except PydanticValidationError as exc:
                    raise ExchangeError("public/get-tickers", -1, f"unexpected shape: {exc}") from exc
        raise ExchangeError("public/get-tickers", -1, f"no ticker for {instrument}")

    def get_instrument(self, instrument: str) -> InstrumentSpec:
        result = self.public("public/get-instruments")
        rows = _data_rows("public/get-instruments", result)
        for row in rows:
            if row.get("symbol") == instrument:
                try:
                    return InstrumentSpec.model_validate(row)
                except PydanticValidationError as exc:
                    raise ExchangeError(
                        "public/get-instruments", -1, f"unexpected shape: {exc}"
                    ) from exc
        raise ExchangeError("public/get-instruments", -1, f"unknown instrument {instrument}")

    def _decode(self, method: str, payload: Any, *, http_status: int) -> Any:
        try:
            envelope = ExchangeEnvelope.model_validate(payload)
        except PydanticValidationError as exc:
            raise ExchangeError(method, http_status, "malformed response envelope") from exc
        if envelope.code != 0:
            raise ExchangeError(method, envelope.code, envelope.message or "unknown error")
        return envelope.result

    def _log_call(self, method: str, started: float, *, success: bool, **kwargs: Any) -> None:
        log_exchange_call(
            self._logger,
            method=method,
            success=success,
            latency_ms=(time.perf_counter() - started) * 1000,
            **kwargs,
        )


def _data_rows(method: str, result: Any) -> list[dict[str, Any]]:
    data = result.get("data") if isinstance(result, dict) else None
    if not isinstance(data, list):
        raise ExchangeError(method, -1, "missing result.data")
    return [row for row in data if isinstance(row, dict)]


def _parse_ack(method: str, result: Any) -> OrderAck:
    if not isinstance(result, dict):
        raise ExchangeError(method, -1, "missing order acknowledgement")
    return OrderAck.model_validate(result)


class ExchangeLike(Protocol):
    """Exchange surface used by the orchestrators."""

    def cancel_all_orders(self, instrument: str) -> Any: ...

    def get_positions(self, instrument: str | None = None) -> list[Position]: ...

    def create_order(self, order: OrderRequest) -> OrderAck: ...

    def close_position(self, instrument: str) -> OrderAck: ...

    def get_ticker(self, instrument: str) -> Ticker: ...

    def get_instrument(self, instrument: str) -> InstrumentSpec: ...
