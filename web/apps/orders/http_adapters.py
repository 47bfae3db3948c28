"""HTTP adapter for the rewards provider with a circuit breaker and context headers.

This module implements the ``RewardsGateway`` port using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Bearer-token authentication with the configured provider API key.
- An explicit timeout on every call, so a stalled provider cannot hold a
    placement indefinitely.
- A circuit breaker in front of the provider to avoid hammering it while
    it is unhealthy, with HALF_OPEN probing after a timeout.
- Failure classification into ``GatewayErrorKind``.

The adapter never retries: one call, one outcome. Retrying is the caller's
decision, based on the error kind.
"""

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Sequence

import httpx
from pydantic import ValidationError

from gateway.middleware import REQUEST_ID_CTX

from .domain import CartLine, GatewayError, GatewayErrorKind, RewardsDecision, RewardsGateway, compute_totals
from .schemas import RewardsDecisionDTO

logger = logging.getLogger("orders.rewards")


@dataclass(frozen=True)
class RewardsConfig:
    """Immutable provider configuration, built once at startup.

    Attributes:
        base_url: Root URL of the provider's integration API.
        api_key: Bearer token attached to every request.
        timeout: Per-call timeout in seconds.
        circuit_fail_threshold: Consecutive transient failures that open
            the circuit.
        circuit_reset_timeout: Seconds before an open circuit allows a probe.
    """

    base_url: str
    api_key: str = ""
    timeout: float = 3.0
    circuit_fail_threshold: int = 5
    circuit_reset_timeout: float = 30.0


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def configure(self, fail_threshold: int, reset_timeout: float):
        with self._lock:
            self.fail_threshold = fail_threshold
            self.reset_timeout = reset_timeout

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            GatewayError: ``transient-network`` if the circuit is OPEN or a
                HALF_OPEN probe is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise GatewayError(GatewayErrorKind.TRANSIENT_NETWORK, "CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise GatewayError(GatewayErrorKind.TRANSIENT_NETWORK, "CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold exceeded."""
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                if self._state != "OPEN":
                    logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        """Release any HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


# Process-wide instance, thresholds applied from RewardsConfig
_rewards_cb = CircuitBreaker("rewards", 5, 30.0)


def rewards_circuit_state() -> str:
    """State of the process-wide rewards circuit (CLOSED, OPEN or HALF_OPEN)."""
    return _rewards_cb.state


# ---------------- Helpers ---------------- #

def _request_headers(api_key: str) -> dict:
    """Build headers: JSON content, bearer auth and ``X-Request-ID``."""
    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    return headers


def _provider_message(resp: httpx.Response) -> str:
    """Best-effort extraction of the provider's error message."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        for key in ("message", "detail", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {resp.status_code}"


def _line_payload(line: CartLine) -> dict:
    return {
        "sku": line.sku,
        "name": line.name,
        "price": float(line.unit_price),
        "quantity": line.quantity,
    }


# ---------------- Rewards Adapter ---------------- #

class HttpRewardsGateway(RewardsGateway):
    """HTTP client for the rewards provider with timeout and circuit breaker."""

    def __init__(self, config: RewardsConfig, breaker: CircuitBreaker = _rewards_cb):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.breaker = breaker
        self.breaker.configure(config.circuit_fail_threshold, config.circuit_reset_timeout)

    def sync_profile(self, user_id: str, attributes: Optional[Mapping] = None) -> None:
        """Create or update the user's profile at the provider.

        Raises:
            GatewayError: On any failure, classified by kind.
        """
        payload = {"userId": user_id}
        for key, value in (attributes or {}).items():
            payload[key] = float(value) if isinstance(value, Decimal) else value
        self._send("PUT", f"/v1/profiles/{user_id}", payload)
        logger.info("profile synced", extra={"user_id": user_id})

    def evaluate_session(self, user_id: str, items: Sequence[CartLine]) -> RewardsDecision:
        """Evaluate the cart and return the provider's decision.

        Maps the response body through ``RewardsDecisionDTO``; a body that
        is not valid JSON or does not match the schema is an
        ``unexpected`` failure.

        Raises:
            GatewayError: On any failure, classified by kind.
        """
        subtotal, _, _ = compute_totals(items, Decimal("0"))
        payload = {
            "userId": user_id,
            "items": [_line_payload(i) for i in items],
            "cartTotal": float(subtotal),
        }
        resp = self._send("POST", "/v1/sessions", payload)
        try:
            dto = RewardsDecisionDTO.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.error("invalid evaluation payload", extra={"user_id": user_id, "error": str(e)})
            raise GatewayError(GatewayErrorKind.UNEXPECTED, "INVALID_PROVIDER_RESPONSE") from e
        logger.info("session evaluated", extra={"user_id": user_id, "discount_amount": str(dto.discount_amount)})
        return RewardsDecision(**dto.model_dump())

    def confirm_loyalty(self, user_id: str, final_total: Decimal) -> None:
        """Confirm loyalty usage for the final charged total.

        Raises:
            GatewayError: On any failure, classified by kind.
        """
        self._send("POST", f"/v1/loyalty/{user_id}/confirm", {"totalAmount": float(final_total)})
        logger.info("loyalty confirmed", extra={"user_id": user_id, "total_amount": str(final_total)})

    def _send(self, method: str, path: str, payload: dict) -> httpx.Response:
        """Perform one protected request and classify its outcome.

        Business rejections (4xx) are not counted as circuit failures;
        transport errors, timeouts and 5xx are.
        """
        url = f"{self.base_url}{path}"
        self.breaker.before_call()
        logger.info("rewards request", extra={"method": method, "url": url})
        try:
            try:
                with httpx.Client(timeout=self.config.timeout) as client:
                    resp = client.request(method, url, json=payload, headers=_request_headers(self.config.api_key))
            except httpx.TimeoutException as e:
                self.breaker.on_failure()
                logger.warning("rewards timeout", extra={"method": method, "url": url})
                raise GatewayError(GatewayErrorKind.TRANSIENT_NETWORK, "PROVIDER_TIMEOUT") from e
            except httpx.RequestError as e:
                self.breaker.on_failure()
                logger.warning("rewards transport error", extra={"method": method, "url": url, "error": str(e)})
                raise GatewayError(GatewayErrorKind.TRANSIENT_NETWORK, str(e) or "TRANSPORT_ERROR") from e

            if 500 <= resp.status_code < 600:
                self.breaker.on_failure()
                raise GatewayError(GatewayErrorKind.TRANSIENT_NETWORK, _provider_message(resp))
            if 400 <= resp.status_code < 500:
                self.breaker.on_success()  # business outcome, not a circuit failure
                raise GatewayError(GatewayErrorKind.PROVIDER_REJECTED, _provider_message(resp))
            if not 200 <= resp.status_code < 300:
                self.breaker.on_success()
                raise GatewayError(GatewayErrorKind.UNEXPECTED, f"HTTP {resp.status_code}")

            self.breaker.on_success()
            return resp
        finally:
            self.breaker.on_finish()
