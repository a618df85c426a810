"""Domain models for multi-explorer contract verification."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, conint, model_validator

OutcomeStatus = Literal["success", "error"]


class OptimizationProfile(BaseModel):
    """Optimizer settings recorded alongside a compilation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    compiler_version: str = Field(alias="compilerVersion")
    runs: conint(ge=0)  # type: ignore[valid-type]
    enabled: bool

    @model_validator(mode="after")
    def _enabled_tracks_runs(self) -> "OptimizationProfile":
        if self.enabled != (self.runs > 0):
            raise ValueError("enabled must equal runs > 0")
        return self

    @classmethod
    def from_runs(cls, compiler_version: str, runs: int) -> "OptimizationProfile":
        return cls(compiler_version=compiler_version, runs=runs, enabled=runs > 0)


class CompilationArtifact(BaseModel):
    """Output of a single compilation, shared read-only by every lane."""

    model_config = ConfigDict(frozen=True)

    bytecode: str
    abi: str
    optimization: OptimizationProfile
    deployed_bytecode: str | None = None
    contract_name: str | None = None
    # Long form reported by the compiler, e.g. v0.8.20+commit.a1b79de6
    compiler_build: str | None = None

    @model_validator(mode="after")
    def _hex_prefixed(self) -> "CompilationArtifact":
        if not self.bytecode.startswith("0x"):
            raise ValueError("bytecode must be 0x-prefixed")
        if self.deployed_bytecode is not None and not self.deployed_bytecode.startswith("0x"):
            raise ValueError("deployed_bytecode must be 0x-prefixed")
        return self

    @property
    def comparable_bytecode(self) -> str:
        """Runtime code when the compiler produced it, creation code otherwise."""
        return self.deployed_bytecode or self.bytecode

    @property
    def explorer_compiler_version(self) -> str:
        """Version string explorers expect in `compilerversion`."""
        return self.compiler_build or self.optimization.compiler_version


class VerificationOutcome(BaseModel):
    """Result of one network's lane."""

    explorer: str
    status: OutcomeStatus
    optimization: OptimizationProfile
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        """Serialize for the API, omitting empty warning/error lists."""
        payload: dict[str, Any] = {
            "status": self.status,
            "explorer": self.explorer,
            "optimization": self.optimization.model_dump(by_alias=True),
        }
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


@dataclass(frozen=True)
class VerificationRequest:
    """Validated verification request."""

    contract_address: str
    source_code: str
    compiler_version: str
    networks: tuple[str, ...]
    optimizer_runs: int = 200
    contract_name: str | None = None
    unsupported_networks: tuple[str, ...] = field(default_factory=tuple)

    @property
    def supported_networks(self) -> tuple[str, ...]:
        return tuple(name for name in self.networks if name not in self.unsupported_networks)


def error_body(errors: list[str]) -> dict[str, Any]:
    """Top-level error payload returned instead of a per-network array."""
    return {"status": "error", "errors": list(errors)}
