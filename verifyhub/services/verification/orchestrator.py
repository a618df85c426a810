"""Fans a verification request out to every selected explorer and aggregates the lanes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

from verifyhub.clients.explorer import SubmissionResult, build_explorer_clients
from verifyhub.config import Settings, settings
from verifyhub.models.verification import (
    CompilationArtifact,
    OptimizationProfile,
    VerificationOutcome,
    VerificationRequest,
)
from verifyhub.observability.metrics import metrics
from verifyhub.services.verification.compiler import CompilerAdapter, SolcxCompiler
from verifyhub.services.verification.errors import ConfigurationError, VerificationTimeoutError
from verifyhub.services.verification.reconciler import BytecodeReconciler
from verifyhub.services.verification.registry import NetworkRegistry, build_registry
from verifyhub.services.verification.validator import unsupported_network_message, validate_request

logger = logging.getLogger(__name__)


class ExplorerSubmitter(Protocol):
    """What a lane needs from an explorer client."""

    @property
    def display_name(self) -> str:
        ...

    async def submit(
        self,
        contract_address: str,
        source_code: str,
        optimization: OptimizationProfile,
        contract_name: str | None = None,
        *,
        compiler_version: str | None = None,
    ) -> SubmissionResult:
        ...

    async def fetch_code(self, address: str) -> str | None:
        ...


class VerificationOrchestrator:
    """Validate, compile once, then run one independent lane per network."""

    def __init__(
        self,
        *,
        registry: NetworkRegistry,
        compiler: CompilerAdapter,
        clients: Mapping[str, ExplorerSubmitter],
        reconciler: BytecodeReconciler | None = None,
        lane_timeout: float = 60.0,
        request_timeout: float = 120.0,
        default_runs: int = 200,
    ) -> None:
        if lane_timeout <= 0 or request_timeout <= 0:
            raise ValueError("timeouts must be > 0")
        self._registry = registry
        self._compiler = compiler
        self._clients = dict(clients)
        self._reconciler = reconciler or BytecodeReconciler(dict(clients))
        self._lane_timeout = lane_timeout
        self._request_timeout = request_timeout
        self._default_runs = default_runs

    @property
    def registry(self) -> NetworkRegistry:
        return self._registry

    async def verify(self, payload: Any) -> list[VerificationOutcome]:
        """Run a full verification; request-fatal errors raise, lane errors are folded in."""
        request = validate_request(payload, self._registry, default_runs=self._default_runs)
        logger.info(
            "verification.received",
            extra={
                "address": request.contract_address,
                "networks": list(request.networks),
                "unsupported": list(request.unsupported_networks),
            },
        )

        missing = self._registry.missing_credentials(request.supported_networks)
        if missing:
            logger.error("verification.credentials_missing", extra={"networks": missing})
            raise ConfigurationError(missing=missing)

        if not request.supported_networks:
            logger.info("verification.nothing_supported", extra={"networks": list(request.networks)})
            optimization = OptimizationProfile.from_runs(request.compiler_version, request.optimizer_runs)
            return [self._unsupported_outcome(name, optimization) for name in request.networks]

        try:
            outcomes = await asyncio.wait_for(
                self._compile_and_fan_out(request), timeout=self._request_timeout
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "verification.request_timeout",
                extra={"address": request.contract_address, "timeout_s": self._request_timeout},
            )
            raise VerificationTimeoutError(
                f"verification timed out after {self._request_timeout:g}s"
            ) from exc

        succeeded = sum(1 for outcome in outcomes if outcome.status == "success")
        logger.info(
            "verification.aggregated",
            extra={"address": request.contract_address, "lanes": len(outcomes), "succeeded": succeeded},
        )
        return outcomes

    async def _compile_and_fan_out(self, request: VerificationRequest) -> list[VerificationOutcome]:
        """Compile once, then fan out; the caller bounds both with the request deadline."""
        artifact = await self._compile(request)
        return await self._fan_out(request, artifact)

    async def _compile(self, request: VerificationRequest) -> CompilationArtifact:
        artifact = await asyncio.to_thread(
            self._compiler.compile,
            request.source_code,
            request.compiler_version,
            request.optimizer_runs,
            request.contract_name,
        )
        logger.info(
            "verification.compiled",
            extra={"contract_name": artifact.contract_name, "runs": artifact.optimization.runs},
        )
        return artifact

    async def _fan_out(
        self, request: VerificationRequest, artifact: CompilationArtifact
    ) -> list[VerificationOutcome]:
        names = list(request.networks)
        lanes = [self._bounded_lane(request, artifact, name) for name in names]
        results = await asyncio.gather(*lanes, return_exceptions=True)

        outcomes: list[VerificationOutcome] = []
        for name, result in zip(names, results, strict=True):
            if isinstance(result, VerificationOutcome):
                outcomes.append(result)
                continue
            logger.error(
                "verification.lane_crashed",
                extra={"network": name, "error": repr(result)},
            )
            outcomes.append(
                self._error_outcome(name, artifact, [f"verification failed on {name}: {result}"])
            )
        return outcomes

    async def _bounded_lane(
        self, request: VerificationRequest, artifact: CompilationArtifact, name: str
    ) -> VerificationOutcome:
        try:
            return await asyncio.wait_for(self._run_lane(request, artifact, name), timeout=self._lane_timeout)
        except asyncio.TimeoutError:
            logger.warning("verification.lane_timeout", extra={"network": name})
            metrics.increment("lane.timeout", tags={"network": name})
            return self._error_outcome(
                name, artifact, [f"verification on {name} timed out after {self._lane_timeout:g}s"]
            )

    async def _run_lane(
        self, request: VerificationRequest, artifact: CompilationArtifact, name: str
    ) -> VerificationOutcome:
        config = self._registry.resolve(name)
        if config is None or name in request.unsupported_networks:
            return self._unsupported_outcome(name, artifact.optimization)
        client = self._clients.get(name)
        if client is None:
            return self._error_outcome(name, artifact, [f"no explorer client configured for {name}"])

        start = time.perf_counter()
        warnings, submission = await asyncio.gather(
            self._reconciler.reconcile(request.contract_address, artifact.comparable_bytecode, name),
            self._submit(client, request, artifact),
        )
        outcome = VerificationOutcome(
            explorer=config.display_name,
            status=submission.status,
            optimization=artifact.optimization,
            warnings=list(warnings),
            errors=list(submission.errors),
        )
        elapsed_ms = (time.perf_counter() - start) * 1000
        tags = {"network": name, "status": outcome.status}
        metrics.timing("lane.latency_ms", elapsed_ms, tags=tags)
        metrics.increment("lane.outcome", tags=tags)
        logger.info(
            "verification.lane_complete",
            extra={"network": name, "status": outcome.status, "warnings": len(outcome.warnings)},
        )
        return outcome

    async def _submit(
        self, client: ExplorerSubmitter, request: VerificationRequest, artifact: CompilationArtifact
    ) -> SubmissionResult:
        try:
            return await client.submit(
                request.contract_address,
                request.source_code,
                artifact.optimization,
                artifact.contract_name,
                compiler_version=artifact.explorer_compiler_version,
            )
        except Exception as exc:
            logger.exception("verification.submit_crashed", extra={"explorer": client.display_name})
            return SubmissionResult(status="error", errors=[f"{client.display_name} request failed: {exc}"])

    def _unsupported_outcome(self, name: str, optimization: OptimizationProfile) -> VerificationOutcome:
        return VerificationOutcome(
            explorer=name,
            status="error",
            optimization=optimization,
            errors=[unsupported_network_message(name)],
        )

    def _error_outcome(
        self, name: str, artifact: CompilationArtifact, errors: list[str]
    ) -> VerificationOutcome:
        config = self._registry.resolve(name)
        return VerificationOutcome(
            explorer=config.display_name if config else name,
            status="error",
            optimization=artifact.optimization,
            errors=errors,
        )

    async def aclose(self) -> None:
        for client in self._clients.values():
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


def build_orchestrator(config: Settings) -> VerificationOrchestrator:
    registry = build_registry(config)
    clients = build_explorer_clients(
        registry.enabled(),
        timeout=config.explorer_timeout_seconds,
        max_attempts=config.explorer_max_attempts,
        backoff_base=config.explorer_backoff_base_seconds,
        backoff_max=config.explorer_backoff_max_seconds,
    )
    return VerificationOrchestrator(
        registry=registry,
        compiler=SolcxCompiler(auto_install=config.solc_auto_install, evm_version=config.solc_evm_version),
        clients=clients,
        reconciler=BytecodeReconciler(dict(clients), strip_metadata=config.reconcile_strip_metadata),
        lane_timeout=config.lane_timeout_seconds,
        request_timeout=config.request_timeout_seconds,
        default_runs=config.default_optimizer_runs,
    )


_ORCHESTRATOR: VerificationOrchestrator | None = None


def get_orchestrator() -> VerificationOrchestrator:
    """Singleton accessor used by API routes."""
    global _ORCHESTRATOR  # noqa: PLW0603
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = build_orchestrator(settings)
    return _ORCHESTRATOR


async def shutdown_orchestrator() -> None:
    global _ORCHESTRATOR  # noqa: PLW0603
    if _ORCHESTRATOR is not None:
        await _ORCHESTRATOR.aclose()
        _ORCHESTRATOR = None
