"""Network registry mapping each supported chain to its explorer configuration."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from enum import Enum

from verifyhub.config import Settings

logger = logging.getLogger(__name__)


class NetworkId(str, Enum):
    ETHEREUM = "ethereum"
    BASE = "base"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    ASSETCHAIN = "assetchain"


@dataclass(frozen=True)
class ExplorerConfig:
    """Endpoint and credential for one etherscan-compatible explorer."""

    network: NetworkId
    endpoint_url: str
    display_name: str
    credential: str | None = None
    enabled: bool = True
    chain_id: int | None = None

    @property
    def configured(self) -> bool:
        return bool(self.credential and self.credential.strip())


class NetworkRegistry(Mapping[str, ExplorerConfig]):
    """Read-only lookup from network name to explorer configuration."""

    def __init__(self, configs: Mapping[NetworkId, ExplorerConfig]) -> None:
        self._configs = {network.value: config for network, config in configs.items()}

    def __getitem__(self, name: str) -> ExplorerConfig:
        return self._configs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    def resolve(self, name: str) -> ExplorerConfig | None:
        """Return the config for an enabled network, or ``None``."""
        config = self._configs.get(name)
        if config is None or not config.enabled:
            return None
        return config

    def enabled(self) -> list[ExplorerConfig]:
        return [config for config in self._configs.values() if config.enabled]

    def missing_credentials(self, names: list[str] | tuple[str, ...]) -> list[str]:
        """Enabled networks among ``names`` that have no credential."""
        missing: list[str] = []
        for name in names:
            config = self.resolve(name)
            if config is not None and not config.configured:
                missing.append(name)
        return missing


_DEFAULTS: dict[NetworkId, ExplorerConfig] = {
    NetworkId.ETHEREUM: ExplorerConfig(
        network=NetworkId.ETHEREUM,
        endpoint_url="https://api.etherscan.io/api",
        display_name="Etherscan",
        chain_id=1,
    ),
    NetworkId.BASE: ExplorerConfig(
        network=NetworkId.BASE,
        endpoint_url="https://api.basescan.org/api",
        display_name="Basescan",
        chain_id=8453,
    ),
    NetworkId.ARBITRUM: ExplorerConfig(
        network=NetworkId.ARBITRUM,
        endpoint_url="https://api.arbiscan.io/api",
        display_name="Arbiscan",
        chain_id=42161,
    ),
    NetworkId.OPTIMISM: ExplorerConfig(
        network=NetworkId.OPTIMISM,
        endpoint_url="https://api-optimistic.etherscan.io/api",
        display_name="Optimistic Etherscan",
        chain_id=10,
    ),
    NetworkId.ASSETCHAIN: ExplorerConfig(
        network=NetworkId.ASSETCHAIN,
        endpoint_url="https://scan.assetchain.org/api",
        display_name="AssetChain Explorer",
        enabled=False,
        chain_id=42420,
    ),
}


def build_registry(settings: Settings) -> NetworkRegistry:
    """Resolve credentials and endpoint overrides from settings once at startup."""
    keys = settings.explorer_api_keys
    endpoints = {
        NetworkId.ETHEREUM: settings.etherscan_api_url,
        NetworkId.BASE: settings.basescan_api_url,
        NetworkId.ARBITRUM: settings.arbiscan_api_url,
        NetworkId.OPTIMISM: settings.optimism_api_url,
        NetworkId.ASSETCHAIN: settings.assetchain_api_url,
    }
    configs: dict[NetworkId, ExplorerConfig] = {}
    for network, default in _DEFAULTS.items():
        enabled = settings.assetchain_enabled if network is NetworkId.ASSETCHAIN else default.enabled
        configs[network] = replace(
            default,
            endpoint_url=endpoints[network] or default.endpoint_url,
            credential=keys.get(network.value),
            enabled=enabled,
        )
    registry = NetworkRegistry(configs)
    logger.info(
        "registry.built",
        extra={
            "enabled": [config.network.value for config in registry.enabled()],
            "configured": [config.network.value for config in registry.enabled() if config.configured],
        },
    )
    return registry
