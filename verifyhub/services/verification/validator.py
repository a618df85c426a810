"""Input validation for verification requests."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from eth_utils import is_checksum_address, is_hex_address

from verifyhub.models.verification import VerificationRequest
from verifyhub.services.verification.errors import RequestValidationError
from verifyhub.services.verification.registry import NetworkRegistry

REQUIRED_FIELDS = ("contractAddress", "sourceCode", "compilerVersion", "networks")
DEFAULT_OPTIMIZER_RUNS = 200

# Accepts "v0.8.20", "0.8.20" and the explorer long form "v0.8.20+commit.a1b79de6".
COMPILER_VERSION_PATTERN = re.compile(r"^v?\d+\.\d+\.\d+(\+commit\.[0-9a-fA-F]+)?$")


def is_valid_address(value: str) -> bool:
    """20-byte hex address; mixed-case input must carry a valid EIP-55 checksum."""
    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    if not is_hex_address(value):
        return False
    body = value[2:]
    if body.lower() == body or body.upper() == body:
        return True
    return is_checksum_address(value)


def is_valid_compiler_version(value: str) -> bool:
    return isinstance(value, str) and bool(COMPILER_VERSION_PATTERN.match(value.strip()))


def normalize_networks(raw: list[Any]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in raw:
        name = item.strip().lower()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


def validate_request(
    payload: Any,
    registry: NetworkRegistry,
    *,
    default_runs: int = DEFAULT_OPTIMIZER_RUNS,
) -> VerificationRequest:
    """Return a typed request or raise with every applicable validation error."""
    if not isinstance(payload, Mapping):
        raise RequestValidationError(["Request body must be a JSON object"])

    errors: list[str] = []

    for name in REQUIRED_FIELDS:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"Missing required field: {name}")

    networks: tuple[str, ...] = ()
    unsupported: list[str] = []
    raw_networks = payload.get("networks")
    if raw_networks is not None:
        if (
            not isinstance(raw_networks, list)
            or not raw_networks
            or not all(isinstance(item, str) for item in raw_networks)
        ):
            errors.append("networks must be a non-empty list of network names")
        else:
            networks = normalize_networks(raw_networks)
            if not networks:
                errors.append("networks must be a non-empty list of network names")
            unsupported = [name for name in networks if registry.resolve(name) is None]

    address = payload.get("contractAddress")
    if address is not None and not (isinstance(address, str) and not address.strip()):
        if not isinstance(address, str) or not is_valid_address(address.strip()):
            errors.append(f"Invalid contract address: {address}")

    version = payload.get("compilerVersion")
    if version is not None and not (isinstance(version, str) and not version.strip()):
        if not is_valid_compiler_version(version):
            errors.append(f"Invalid compiler version: {version}")

    source = payload.get("sourceCode")
    if source is not None and not isinstance(source, str):
        errors.append("sourceCode must be a string")

    runs = payload.get("optimizerRuns", default_runs)
    if runs is None:
        runs = default_runs
    if isinstance(runs, bool) or not isinstance(runs, int) or runs < 0:
        errors.append("optimizerRuns must be a non-negative integer")

    contract_name = payload.get("contractName")
    if contract_name is not None and not isinstance(contract_name, str):
        errors.append("contractName must be a string")

    if errors:
        raise RequestValidationError(errors)

    return VerificationRequest(
        contract_address=address.strip(),
        source_code=source,
        compiler_version=version.strip(),
        networks=networks,
        optimizer_runs=runs,
        contract_name=(contract_name.strip() or None) if contract_name else None,
        unsupported_networks=tuple(unsupported),
    )


def unsupported_network_message(name: str) -> str:
    return f"unsupported network: {name}"
