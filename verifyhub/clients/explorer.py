"""Client for etherscan-compatible explorer verification APIs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from verifyhub.core.backoff import retry_schedule
from verifyhub.models.verification import OptimizationProfile, OutcomeStatus
from verifyhub.services.verification.registry import ExplorerConfig

logger = logging.getLogger(__name__)

USER_AGENT = "verifyhub/0.1"
RATE_LIMIT_MARKERS = ("rate limit", "too many requests")


class ExplorerError(RuntimeError):
    """Base error for explorer client failures."""

    retryable = False
    # False when the explorer provably did not act on the request.
    reached_server = True

    def __init__(self, message: str, code: str = "EXPLORER_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ExplorerRateLimitError(ExplorerError):
    """Raised when the explorer responds with HTTP 429."""

    retryable = True
    reached_server = False

    def __init__(self, message: str = "Rate limited by explorer") -> None:
        super().__init__(message, code="EXPLORER_429")


class ExplorerTimeoutError(ExplorerError):
    """Raised when the explorer request times out."""

    retryable = True

    def __init__(self, message: str = "Explorer request timed out") -> None:
        super().__init__(message, code="EXPLORER_TIMEOUT")


class ExplorerUnavailableError(ExplorerError):
    """Raised on connection failures and 5xx responses."""

    retryable = True

    def __init__(self, message: str = "Explorer unavailable") -> None:
        super().__init__(message, code="EXPLORER_UNAVAILABLE")


class ExplorerConnectError(ExplorerUnavailableError):
    """Raised when no connection to the explorer could be established."""

    reached_server = False


class ExplorerSchemaError(ExplorerError):
    """Raised when the explorer response is not the expected JSON object."""

    def __init__(self, message: str = "Unexpected explorer response schema") -> None:
        super().__init__(message, code="EXPLORER_SCHEMA_ERR")


@dataclass(frozen=True)
class SubmissionResult:
    """Explorer verdict for one verifysourcecode submission."""

    status: OutcomeStatus
    errors: list[str] = field(default_factory=list)
    guid: str | None = None


class ExplorerClient:
    """Submits sources to, and reads deployed code from, one network's explorer."""

    def __init__(
        self,
        config: ExplorerConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._config = config
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )

    @property
    def config(self) -> ExplorerConfig:
        return self._config

    @property
    def display_name(self) -> str:
        return self._config.display_name

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            await self._http.aclose()

    async def submit(
        self,
        contract_address: str,
        source_code: str,
        optimization: OptimizationProfile,
        contract_name: str | None = None,
        *,
        compiler_version: str | None = None,
    ) -> SubmissionResult:
        """Submit a verifysourcecode request; never raises on remote or transport failure.

        ``compiler_version`` overrides the short version in ``optimization`` with
        the long build string explorers match against.
        """
        form = self._with_credentials(
            {
                "module": "contract",
                "action": "verifysourcecode",
                "contractaddress": contract_address,
                "sourceCode": source_code,
                "codeformat": "solidity-single-file",
                "contractname": contract_name or "",
                "compilerversion": compiler_version or optimization.compiler_version,
                "optimizationUsed": "1" if optimization.enabled else "0",
                "runs": str(optimization.runs),
            }
        )
        try:
            payload = await self._call("POST", data=form)
        except ExplorerError as exc:
            logger.warning(
                "explorer.submit_failed",
                extra={"explorer": self.display_name, "code": exc.code, "error": str(exc)},
            )
            return SubmissionResult(
                status="error",
                errors=[f"{self.display_name} request failed: {exc}"],
            )

        remote_status = str(payload.get("status", "")).strip()
        result = payload.get("result")
        if remote_status == "1":
            guid = str(result) if result is not None else None
            logger.info("explorer.submitted", extra={"explorer": self.display_name, "guid": guid})
            return SubmissionResult(status="success", guid=guid)

        message = result if result is not None else payload.get("message", "Unknown explorer error")
        logger.info(
            "explorer.rejected",
            extra={"explorer": self.display_name, "remote_status": remote_status},
        )
        return SubmissionResult(status="error", errors=[str(message)])

    async def fetch_code(self, address: str) -> str | None:
        """Return the deployed bytecode at ``address`` via the explorer's proxy module."""
        params = self._with_credentials(
            {
                "module": "proxy",
                "action": "eth_getCode",
                "address": address,
                "tag": "latest",
            }
        )
        payload = await self._call("GET", params=params)
        if payload.get("error"):
            raise ExplorerError(f"eth_getCode failed: {payload['error']!r}", code="EXPLORER_RPC_ERROR")
        if str(payload.get("status", "")) == "0":
            raise ExplorerError(f"eth_getCode failed: {payload.get('result')}", code="EXPLORER_RPC_ERROR")
        result = payload.get("result")
        if result is None:
            return None
        if not isinstance(result, str):
            raise ExplorerSchemaError("`result` from eth_getCode must be a hex string.")
        return result

    def _with_credentials(self, params: dict[str, str]) -> dict[str, str]:
        params["apikey"] = self._config.credential or ""
        if self._config.chain_id and "/v2/" in self._config.endpoint_url:
            params["chainid"] = str(self._config.chain_id)
        return params

    async def _call(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        # Submissions are not idempotent; only resend ones the explorer never acted on.
        idempotent = method == "GET"
        last_exc: ExplorerError | None = None
        for attempt, delay in retry_schedule(
            max_attempts=self._max_attempts,
            base_delay=self._backoff_base,
            max_delay=self._backoff_max,
        ):
            try:
                payload = await self._send_once(method, params=params, data=data)
            except ExplorerError as exc:
                if not _should_retry(exc, idempotent) or attempt >= self._max_attempts:
                    raise
                last_exc = exc
                logger.warning(
                    "explorer.retry",
                    extra={"explorer": self.display_name, "attempt": attempt, "code": exc.code},
                )
                await self._sleep(delay)
                continue

            if _is_rate_limited(payload) and attempt < self._max_attempts:
                logger.warning(
                    "explorer.retry",
                    extra={"explorer": self.display_name, "attempt": attempt, "code": "EXPLORER_RATE_LIMIT"},
                )
                await self._sleep(delay)
                continue
            return payload

        raise last_exc or ExplorerError("Exceeded retry policy")

    async def _send_once(
        self,
        method: str,
        *,
        params: dict[str, str] | None,
        data: dict[str, str] | None,
    ) -> dict[str, Any]:
        try:
            response = await self._http.request(
                method,
                self._config.endpoint_url,
                params=params,
                data=data,
                timeout=self._timeout,
            )
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise ExplorerConnectError(f"Could not connect to {self.display_name}: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise ExplorerTimeoutError(f"{self.display_name} request timed out") from exc
        except httpx.HTTPError as exc:
            raise ExplorerUnavailableError(f"HTTP error calling {self.display_name}: {exc}") from exc

        if response.status_code == 429:
            raise ExplorerRateLimitError()
        if response.status_code in (408, 504):
            raise ExplorerTimeoutError()
        if response.status_code >= 500:
            raise ExplorerUnavailableError(f"{self.display_name} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise ExplorerError(
                f"{self.display_name} request failed: {response.status_code} - {response.text[:200]}",
                code=f"EXPLORER_{response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExplorerSchemaError(f"Failed to decode {self.display_name} response JSON.") from exc
        if not isinstance(payload, dict):
            raise ExplorerSchemaError(f"{self.display_name} response must be a JSON object.")
        return payload

    async def __aenter__(self) -> "ExplorerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def _should_retry(exc: ExplorerError, idempotent: bool) -> bool:
    if not exc.retryable:
        return False
    return idempotent or not exc.reached_server


def _is_rate_limited(payload: dict[str, Any]) -> bool:
    if str(payload.get("status", "")) != "0":
        return False
    result = str(payload.get("result") or "").lower()
    return any(marker in result for marker in RATE_LIMIT_MARKERS)


def build_explorer_clients(
    configs: list[ExplorerConfig],
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 15.0,
    max_attempts: int = 3,
    backoff_base: float = 0.5,
    backoff_max: float = 5.0,
) -> dict[str, ExplorerClient]:
    """One client per network, optionally sharing a connection pool."""
    return {
        config.network.value: ExplorerClient(
            config,
            http_client=http_client,
            timeout=timeout,
            max_attempts=max_attempts,
            backoff_base=backoff_base,
            backoff_max=backoff_max,
        )
        for config in configs
    }
