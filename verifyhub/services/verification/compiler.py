"""Compiler adapter producing bytecode, ABI and optimizer profile for a source unit."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

import solcx
from solcx.exceptions import SolcError

from verifyhub.models.verification import CompilationArtifact, OptimizationProfile
from verifyhub.observability.metrics import metrics
from verifyhub.services.verification.errors import CompilationError

logger = logging.getLogger(__name__)

SOURCE_UNIT = "Contract.sol"
DEFAULT_OPTIMIZER_RUNS = 200


class CompilerAdapter(Protocol):
    """Compilation capability used by the orchestrator."""

    def compile(
        self,
        source_code: str,
        compiler_version: str,
        optimizer_runs: int = DEFAULT_OPTIMIZER_RUNS,
        contract_name: str | None = None,
    ) -> CompilationArtifact:
        ...


def normalize_solc_version(compiler_version: str) -> str:
    """'v0.8.20+commit.a1b79de6' -> '0.8.20'."""
    version = compiler_version.strip()
    if version.startswith("v"):
        version = version[1:]
    return version.split("+", 1)[0]


def build_standard_input(
    source_code: str,
    optimizer_runs: int,
    *,
    evm_version: str | None = None,
) -> dict[str, Any]:
    settings: dict[str, Any] = {
        "optimizer": {"enabled": optimizer_runs > 0, "runs": optimizer_runs},
        "outputSelection": {
            "*": {
                "*": ["abi", "evm.bytecode.object", "evm.deployedBytecode.object", "metadata"],
            }
        },
    }
    if evm_version:
        settings["evmVersion"] = evm_version
    return {
        "language": "Solidity",
        "sources": {SOURCE_UNIT: {"content": source_code}},
        "settings": settings,
    }


def format_diagnostics(entries: Any) -> list[str]:
    if not isinstance(entries, list):
        return []
    messages: list[str] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        message = entry.get("formattedMessage") or entry.get("message")
        if message:
            messages.append(str(message).strip())
    return messages


def select_primary_contract(
    contracts: Mapping[str, Any],
    contract_name: str | None = None,
) -> tuple[str, Mapping[str, Any]]:
    """Pick the contract to verify.

    An explicit ``contract_name`` wins. Otherwise the first contract in compiler
    output order that has creation bytecode is used, falling back to the first
    entry when every contract is an interface or abstract.
    """
    if not contracts:
        raise CompilationError("No contracts found in compiler output")
    if contract_name:
        if contract_name not in contracts:
            raise CompilationError(
                f"Contract {contract_name} not found in compiler output",
                diagnostics=[f"Contract {contract_name} not found; available: {', '.join(contracts)}"],
            )
        return contract_name, contracts[contract_name]
    for name, data in contracts.items():
        if _bytecode_object(data, "bytecode"):
            return name, data
    first = next(iter(contracts))
    return first, contracts[first]


def _bytecode_object(data: Mapping[str, Any], key: str) -> str:
    evm = data.get("evm") or {}
    section = evm.get(key) or {}
    return str(section.get("object") or "")


def _metadata_version(data: Mapping[str, Any]) -> str | None:
    raw = data.get("metadata")
    if not raw:
        return None
    try:
        metadata = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning("compiler.metadata_unreadable")
        return None
    compiler = metadata.get("compiler") if isinstance(metadata, Mapping) else None
    if not isinstance(compiler, Mapping):
        return None
    version = compiler.get("version")
    return str(version) if version else None


def _long_version(used: str | None) -> str | None:
    if not used or "+commit." not in used:
        return None
    return used if used.startswith("v") else f"v{used}"


def _hex(value: str) -> str:
    return value if value.startswith("0x") else f"0x{value}"


class SolcxCompiler:
    """Compiles single-file Solidity sources with py-solc-x."""

    def __init__(self, *, auto_install: bool = True, evm_version: str | None = None) -> None:
        self._auto_install = auto_install
        self._evm_version = evm_version

    def compile(
        self,
        source_code: str,
        compiler_version: str,
        optimizer_runs: int = DEFAULT_OPTIMIZER_RUNS,
        contract_name: str | None = None,
    ) -> CompilationArtifact:
        if optimizer_runs < 0:
            raise ValueError("optimizer_runs must be >= 0")
        version = normalize_solc_version(compiler_version)
        self._ensure_version(version)

        start = time.perf_counter()
        status = "success"
        try:
            output = solcx.compile_standard(
                build_standard_input(source_code, optimizer_runs, evm_version=self._evm_version),
                solc_version=version,
            )
            return self._artifact_from_output(
                output,
                compiler_version=compiler_version,
                version=version,
                optimizer_runs=optimizer_runs,
                contract_name=contract_name,
            )
        except SolcError as exc:
            status = "error"
            diagnostics = format_diagnostics(getattr(exc, "error_dict", None)) or [str(exc)]
            logger.warning(
                "compiler.failed",
                extra={"compiler_version": version, "diagnostics": len(diagnostics)},
            )
            raise CompilationError("Compilation failed", diagnostics=diagnostics) from exc
        except CompilationError:
            status = "error"
            raise
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            metrics.timing(
                "compiler.latency_ms",
                elapsed_ms,
                tags={"compiler_version": version, "status": status},
            )

    def _ensure_version(self, version: str) -> None:
        installed = {str(item) for item in solcx.get_installed_solc_versions()}
        if version in installed:
            return
        if not self._auto_install:
            raise CompilationError(
                f"Compiler version {version} is not installed",
                diagnostics=[f"Compiler version {version} is not installed"],
            )
        logger.info("compiler.installing", extra={"compiler_version": version})
        try:
            solcx.install_solc(version)
        except Exception as exc:
            logger.error("compiler.install_failed", extra={"compiler_version": version, "error": str(exc)})
            raise CompilationError(
                f"Unable to load compiler version {version}",
                diagnostics=[f"Unable to load compiler version {version}: {exc}"],
            ) from exc

    def _artifact_from_output(
        self,
        output: Mapping[str, Any],
        *,
        compiler_version: str,
        version: str,
        optimizer_runs: int,
        contract_name: str | None,
    ) -> CompilationArtifact:
        entries = output.get("errors") or []
        fatal = [entry for entry in entries if isinstance(entry, Mapping) and entry.get("severity") == "error"]
        if fatal:
            raise CompilationError("Compilation failed", diagnostics=format_diagnostics(fatal))
        if entries:
            logger.info("compiler.diagnostics", extra={"count": len(entries)})

        contracts = (output.get("contracts") or {}).get(SOURCE_UNIT) or {}
        name, data = select_primary_contract(contracts, contract_name)

        used = _metadata_version(data)
        if used is not None and used.split("+", 1)[0] != version:
            message = f"Compiler version mismatch: requested {version}, used {used}"
            raise CompilationError(message, diagnostics=[message])

        bytecode = _bytecode_object(data, "bytecode")
        if not bytecode:
            message = f"Contract {name} has no bytecode (interface or abstract contract)"
            raise CompilationError(message, diagnostics=[message])
        deployed = _bytecode_object(data, "deployedBytecode")

        logger.info(
            "compiler.completed",
            extra={"contract_name": name, "compiler_version": version, "runs": optimizer_runs},
        )
        return CompilationArtifact(
            bytecode=_hex(bytecode),
            deployed_bytecode=_hex(deployed) if deployed else None,
            abi=json.dumps(data.get("abi") or []),
            optimization=OptimizationProfile.from_runs(compiler_version, optimizer_runs),
            contract_name=name,
            compiler_build=_long_version(used),
        )
