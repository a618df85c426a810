"""Compares freshly compiled bytecode with the code deployed on-chain."""

from __future__ import annotations

import logging
from typing import Protocol

from verifyhub.observability.metrics import metrics

logger = logging.getLogger(__name__)

FETCH_FAILED_WARNING = "failed to verify bytecode on-chain"
MISMATCH_WARNING = "bytecode mismatch detected"
EMPTY_CODE = ("", "0x", "0x0")


class CodeFetcher(Protocol):
    async def fetch_code(self, address: str) -> str | None:
        ...


def strip_metadata(bytecode: str) -> str:
    """Drop the trailing CBOR metadata section solc appends to runtime code.

    The last two bytes encode the metadata length; anything that does not look
    like a well-formed trailer is returned unchanged.
    """
    body = bytecode[2:] if bytecode.startswith("0x") else bytecode
    if len(body) < 4:
        return bytecode
    try:
        length = int(body[-4:], 16)
    except ValueError:
        return bytecode
    cut = (length + 2) * 2
    if length == 0 or cut > len(body):
        return bytecode
    # CBOR map header (0xa1..0xa7) marks the start of the trailer.
    if body[-cut : -cut + 2].lower() not in {f"a{i}" for i in range(1, 8)}:
        return bytecode
    stripped = body[:-cut]
    return f"0x{stripped}" if bytecode.startswith("0x") else stripped


class BytecodeReconciler:
    """Informational side channel; never fails a request."""

    def __init__(self, fetchers: dict[str, CodeFetcher], *, strip_metadata: bool = False) -> None:
        self._fetchers = fetchers
        self._strip_metadata = strip_metadata

    async def reconcile(self, contract_address: str, compiled_bytecode: str, network: str) -> list[str]:
        fetcher = self._fetchers.get(network)
        if fetcher is None:
            logger.warning("reconciler.no_fetcher", extra={"network": network})
            return [FETCH_FAILED_WARNING]
        try:
            deployed = await fetcher.fetch_code(contract_address)
        except Exception as exc:
            logger.warning(
                "reconciler.fetch_failed",
                extra={"network": network, "address": contract_address, "error": str(exc)},
            )
            metrics.increment("reconciler.fetch_failed", tags={"network": network})
            return [FETCH_FAILED_WARNING]

        if deployed is None or deployed.strip().lower() in EMPTY_CODE:
            return [f"no bytecode found for {contract_address} on {network}"]

        expected, actual = compiled_bytecode, deployed
        if self._strip_metadata:
            expected, actual = strip_metadata(expected), strip_metadata(actual)
        if expected != actual:
            logger.info("reconciler.mismatch", extra={"network": network, "address": contract_address})
            metrics.increment("reconciler.mismatch", tags={"network": network})
            return [MISMATCH_WARNING]
        return []
