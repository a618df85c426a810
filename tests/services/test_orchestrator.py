from __future__ import annotations

from collections import Counter

import pytest

from verifyhub.clients.explorer import ExplorerTimeoutError
from verifyhub.services.verification import orchestrator as orchestrator_module
from verifyhub.services.verification.errors import (
    CompilationError,
    ConfigurationError,
    RequestValidationError,
    VerificationTimeoutError,
)

from tests.helpers.fakes import (
    LaneBarrier,
    StubCompiler,
    StubExplorer,
    default_clients,
    make_orchestrator,
    make_registry,
    sample_payload,
)
from tests.helpers.metrics_stub import StubMetrics


@pytest.fixture(autouse=True)
def stub_metrics(monkeypatch):
    stub = StubMetrics()
    monkeypatch.setattr(orchestrator_module, "metrics", stub)
    return stub


@pytest.mark.asyncio
async def test_single_network_end_to_end():
    outcomes = await make_orchestrator().verify(sample_payload())

    assert [outcome.as_dict() for outcome in outcomes] == [
        {
            "status": "success",
            "explorer": "Etherscan",
            "optimization": {"compilerVersion": "v0.8.20", "runs": 200, "enabled": True},
        }
    ]


@pytest.mark.asyncio
async def test_every_requested_network_appears_exactly_once():
    networks = ["ethereum", "base", "arbitrum", "optimism"]

    outcomes = await make_orchestrator().verify(sample_payload(networks=networks))

    assert len(outcomes) == 4
    assert Counter(outcome.explorer for outcome in outcomes) == Counter(
        ["Etherscan", "Basescan", "Arbiscan", "Optimistic Etherscan"]
    )


@pytest.mark.asyncio
async def test_transport_failure_in_one_lane_does_not_affect_others():
    clients = default_clients(ethereum=StubExplorer("Etherscan", submit_error=ExplorerTimeoutError()))

    outcomes = await make_orchestrator(clients=clients).verify(sample_payload(networks=["ethereum", "base"]))

    by_explorer = {outcome.explorer: outcome for outcome in outcomes}
    assert len(outcomes) == 2
    assert by_explorer["Basescan"].status == "success"
    assert by_explorer["Etherscan"].status == "error"
    assert len(by_explorer["Etherscan"].errors) == 1
    assert "Etherscan request failed" in by_explorer["Etherscan"].errors[0]


@pytest.mark.asyncio
async def test_remote_rejection_is_copied_verbatim():
    clients = default_clients(
        base=StubExplorer("Basescan", remote_status="0", result="Fail - Unable to verify"),
    )

    outcomes = await make_orchestrator(clients=clients).verify(sample_payload(networks=["base"]))

    assert outcomes[0].as_dict()["errors"] == ["Fail - Unable to verify"]


@pytest.mark.asyncio
async def test_code_fetch_failure_still_submits():
    ethereum = StubExplorer("Etherscan", code_error=RuntimeError("proxy down"))
    clients = default_clients(ethereum=ethereum)

    outcomes = await make_orchestrator(clients=clients).verify(sample_payload())

    payload = outcomes[0].as_dict()
    assert payload["status"] == "success"
    assert payload["warnings"] == ["failed to verify bytecode on-chain"]
    assert len(ethereum.submissions) == 1


@pytest.mark.asyncio
async def test_mismatch_warning_is_attached_to_lane():
    clients = default_clients(base=StubExplorer("Basescan", code="0x00"))

    outcomes = await make_orchestrator(clients=clients).verify(sample_payload(networks=["ethereum", "base"]))

    by_explorer = {outcome.explorer: outcome.as_dict() for outcome in outcomes}
    assert "warnings" not in by_explorer["Etherscan"]
    assert by_explorer["Basescan"]["warnings"] == ["bytecode mismatch detected"]


@pytest.mark.asyncio
async def test_validation_failure_skips_compiler():
    compiler = StubCompiler()

    with pytest.raises(RequestValidationError) as excinfo:
        await make_orchestrator(compiler=compiler).verify(sample_payload(contractAddress="0x123"))

    assert excinfo.value.errors[0].lower().startswith("invalid contract address")
    assert compiler.calls == []


@pytest.mark.asyncio
async def test_compilation_failure_aborts_before_any_lane():
    clients = default_clients()
    compiler = StubCompiler(error=CompilationError("Compilation failed", diagnostics=["ParserError"]))

    with pytest.raises(CompilationError):
        await make_orchestrator(compiler=compiler, clients=clients).verify(
            sample_payload(networks=["ethereum", "base"])
        )

    assert all(not client.submissions for client in clients.values())


@pytest.mark.asyncio
async def test_missing_credentials_is_request_fatal():
    compiler = StubCompiler()
    registry = make_registry(basescan_api_key=None)

    with pytest.raises(ConfigurationError) as excinfo:
        await make_orchestrator(compiler=compiler, registry=registry).verify(
            sample_payload(networks=["ethereum", "base"])
        )

    assert excinfo.value.errors == ["API keys not configured"]
    assert excinfo.value.missing == ["base"]
    assert compiler.calls == []


@pytest.mark.asyncio
async def test_unsupported_network_degrades_to_lane_error():
    outcomes = await make_orchestrator().verify(sample_payload(networks=["ethereum", "solana"]))

    by_explorer = {outcome.explorer: outcome.as_dict() for outcome in outcomes}
    assert len(outcomes) == 2
    assert by_explorer["Etherscan"]["status"] == "success"
    assert by_explorer["solana"]["status"] == "error"
    assert by_explorer["solana"]["errors"] == ["unsupported network: solana"]


@pytest.mark.asyncio
async def test_disabled_network_is_unsupported():
    outcomes = await make_orchestrator().verify(sample_payload(networks=["assetchain"]))

    assert outcomes[0].as_dict()["errors"] == ["unsupported network: assetchain"]


@pytest.mark.asyncio
async def test_lanes_run_concurrently():
    barrier = LaneBarrier(parties=3)
    clients = default_clients(
        ethereum=StubExplorer("Etherscan", barrier=barrier),
        base=StubExplorer("Basescan", barrier=barrier),
        arbitrum=StubExplorer("Arbiscan", barrier=barrier),
    )

    outcomes = await make_orchestrator(clients=clients).verify(
        sample_payload(networks=["ethereum", "base", "arbitrum"])
    )

    assert {outcome.status for outcome in outcomes} == {"success"}


@pytest.mark.asyncio
async def test_slow_lane_times_out_alone(stub_metrics):
    clients = default_clients(base=StubExplorer("Basescan", delay=1.0))

    outcomes = await make_orchestrator(clients=clients, lane_timeout=0.05).verify(
        sample_payload(networks=["ethereum", "base"])
    )

    by_explorer = {outcome.explorer: outcome for outcome in outcomes}
    assert by_explorer["Etherscan"].status == "success"
    assert by_explorer["Basescan"].status == "error"
    assert "timed out" in by_explorer["Basescan"].errors[0]
    assert "lane.timeout" in stub_metrics.metric_names()


@pytest.mark.asyncio
async def test_request_timeout_fails_whole_request():
    clients = default_clients(base=StubExplorer("Basescan", delay=1.0))

    with pytest.raises(VerificationTimeoutError):
        await make_orchestrator(clients=clients, lane_timeout=5.0, request_timeout=0.05).verify(
            sample_payload(networks=["ethereum", "base"])
        )

    assert clients["base"].cancelled is True
    assert clients["base"].completed is False


@pytest.mark.asyncio
async def test_request_deadline_covers_compilation():
    clients = default_clients()
    compiler = StubCompiler(delay=0.5)

    with pytest.raises(VerificationTimeoutError):
        await make_orchestrator(compiler=compiler, clients=clients, request_timeout=0.05).verify(
            sample_payload(networks=["ethereum"])
        )

    assert clients["ethereum"].submissions == []


@pytest.mark.asyncio
async def test_repeated_requests_have_identical_shapes():
    orchestrator = make_orchestrator()
    payload = sample_payload(networks=["ethereum", "base"])

    first = await orchestrator.verify(payload)
    second = await orchestrator.verify(payload)

    def shape(outcomes):
        return sorted((o.explorer, o.status, o.optimization.model_dump_json()) for o in outcomes)

    assert shape(first) == shape(second)


@pytest.mark.asyncio
async def test_compiles_once_and_forwards_settings():
    compiler = StubCompiler()
    clients = default_clients()

    await make_orchestrator(compiler=compiler, clients=clients).verify(
        sample_payload(networks=["ethereum", "base"], optimizerRuns=0, contractName="A")
    )

    assert len(compiler.calls) == 1
    assert compiler.calls[0]["optimizer_runs"] == 0
    assert compiler.calls[0]["contract_name"] == "A"
    submission = clients["base"].submissions[0]
    assert submission["optimization"].enabled is False
    assert submission["contract_name"] == "A"


@pytest.mark.asyncio
async def test_lane_metrics_are_emitted(stub_metrics):
    await make_orchestrator().verify(sample_payload(networks=["ethereum", "base"]))

    outcome_calls = [call for call in stub_metrics.increment_calls if call["metric"] == "lane.outcome"]
    assert {call["tags"]["network"] for call in outcome_calls} == {"ethereum", "base"}


@pytest.mark.asyncio
async def test_aclose_closes_clients():
    clients = default_clients()

    await make_orchestrator(clients=clients).aclose()

    assert all(client.closed for client in clients.values())


@pytest.mark.asyncio
async def test_only_unsupported_networks_skip_compilation():
    compiler = StubCompiler()

    outcomes = await make_orchestrator(compiler=compiler).verify(sample_payload(networks=["solana", "near"]))

    assert compiler.calls == []
    assert [outcome.as_dict() for outcome in outcomes] == [
        {
            "status": "error",
            "explorer": "solana",
            "optimization": {"compilerVersion": "v0.8.20", "runs": 200, "enabled": True},
            "errors": ["unsupported network: solana"],
        },
        {
            "status": "error",
            "explorer": "near",
            "optimization": {"compilerVersion": "v0.8.20", "runs": 200, "enabled": True},
            "errors": ["unsupported network: near"],
        },
    ]


@pytest.mark.asyncio
async def test_submission_uses_long_compiler_build():
    clients = default_clients()

    outcomes = await make_orchestrator(clients=clients).verify(sample_payload())

    assert clients["ethereum"].submissions[0]["compiler_version"] == "v0.8.20+commit.a1b79de6"
    assert outcomes[0].optimization.compiler_version == "v0.8.20"
