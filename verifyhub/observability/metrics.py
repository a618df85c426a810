from __future__ import annotations

import logging
import secrets
from typing import Any

from verifyhub.config import settings

try:  # pragma: no cover - optional dependency
    from statsd import StatsClient
except Exception:  # pragma: no cover - optional dependency guard
    StatsClient = None  # type: ignore[assignment]

logger = logging.getLogger("verifyhub.metrics")


class MetricsReporter:
    """Metrics emitter for verification lanes (stdout log events or StatsD)."""

    def __init__(
        self,
        *,
        namespace: str | None = None,
        backend: str | None = None,
        disabled: bool | None = None,
        sample_rate: float | None = None,
    ) -> None:
        self._disabled = settings.metrics_disable if disabled is None else disabled
        self._namespace = namespace or settings.metrics_namespace or "verification"
        self._backend = (backend or settings.metrics_backend or "stdout").lower()
        rate = settings.metrics_sample_rate if sample_rate is None else sample_rate
        self._sample_rate = max(0.0, min(rate, 1.0))
        self._schema_version = settings.metrics_schema_version
        self._statsd: StatsClient | None = None
        if self._backend == "statsd" and not self._disabled:
            if StatsClient is None:
                logger.warning("statsd backend requested but statsd package is not installed.")
            else:
                self._statsd = StatsClient(
                    host=settings.metrics_statsd_host,
                    port=settings.metrics_statsd_port,
                    prefix="",
                )

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags=tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags=tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags=tags)

    def _emit(
        self, metric_type: str, metric: str, value: float, *, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None:
            return
        sampled = metric_type == "timing" and self._sample_rate < 1.0
        if sampled and secrets.randbelow(1_000_000) / 1_000_000 > self._sample_rate:
            return
        name = self._qualify(metric)
        payload: dict[str, Any] = {
            "metric": name,
            "value": round(float(value), 4),
            "type": metric_type,
            "schema_version": self._schema_version,
            "tags": tags or {},
        }
        logger.info("verification.metric", extra={"metrics": payload})
        if self._statsd is None:
            return
        try:
            if metric_type == "timing":
                self._statsd.timing(name, value)
            elif metric_type == "gauge":
                self._statsd.gauge(name, value)
            else:
                self._statsd.incr(name, value)
        except OSError as exc:
            logger.warning(
                "metrics.backend_error",
                extra={"metric": name, "backend": self._backend, "error": type(exc).__name__},
            )

    def _qualify(self, metric: str) -> str:
        trimmed = (metric or "").strip()
        if not trimmed:
            return self._namespace
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}"


metrics = MetricsReporter()
