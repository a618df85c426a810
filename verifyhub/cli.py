"""Command line entry point for one-off verifications."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from verifyhub.config import settings
from verifyhub.models.verification import VerificationOutcome, error_body
from verifyhub.services.verification.errors import VerificationError
from verifyhub.services.verification.orchestrator import VerificationOrchestrator, build_orchestrator

logger = logging.getLogger("verifyhub.cli")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify a contract source on several explorers.")
    parser.add_argument("--address", required=True, help="Deployed contract address (0x...).")
    parser.add_argument("--source", type=Path, required=True, help="Path to the Solidity source file.")
    parser.add_argument("--compiler-version", required=True, help="Compiler version, e.g. v0.8.20.")
    parser.add_argument(
        "--network",
        dest="networks",
        action="append",
        required=True,
        help="Target network (repeatable), e.g. --network ethereum --network base.",
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=settings.default_optimizer_runs,
        help="Optimizer runs; 0 disables the optimizer.",
    )
    parser.add_argument("--contract-name", default=None, help="Primary contract to verify.")
    return parser.parse_args(argv)


def build_payload(args: argparse.Namespace) -> dict[str, object]:
    if not args.source.exists():
        raise SystemExit(f"Source file not found: {args.source}")
    payload: dict[str, object] = {
        "contractAddress": args.address,
        "sourceCode": args.source.read_text(encoding="utf-8"),
        "compilerVersion": args.compiler_version,
        "networks": list(args.networks),
        "optimizerRuns": args.runs,
    }
    if args.contract_name:
        payload["contractName"] = args.contract_name
    return payload


async def _run_async(
    orchestrator: VerificationOrchestrator, payload: dict[str, object]
) -> list[VerificationOutcome]:
    try:
        return await orchestrator.verify(payload)
    finally:
        await orchestrator.aclose()


def main(argv: Sequence[str] | None = None, *, orchestrator: VerificationOrchestrator | None = None) -> int:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    args = parse_args(sys.argv[1:] if argv is None else argv)
    payload = build_payload(args)
    engine = orchestrator or build_orchestrator(settings)
    try:
        outcomes = asyncio.run(_run_async(engine, payload))
    except VerificationError as exc:
        logger.error("cli.verification_failed", extra={"code": exc.code})
        print(json.dumps(error_body(exc.errors), indent=2))
        return 1
    print(json.dumps([outcome.as_dict() for outcome in outcomes], indent=2))
    return 0 if all(outcome.status == "success" for outcome in outcomes) else 2


if __name__ == "__main__":
    raise SystemExit(main())
