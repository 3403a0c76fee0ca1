"""
Chain configuration.

Supported chains, the immutable ChainBinding attached to every credential,
and gas station fee quotes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

import httpx


logger = logging.getLogger(__name__)

GWEI = Decimal(10**9)


@dataclass(frozen=True)
class GasFees:
    """EIP-1559 fee parameters in wei."""

    max_fee_per_gas: int | None
    max_priority_fee_per_gas: int | None

    @property
    def is_degenerate(self) -> bool:
        """True when any field is missing or zero."""
        return not self.max_fee_per_gas or not self.max_priority_fee_per_gas


GasStation = Callable[[], GasFees]


class GasStationError(Exception):
    """Raised when a gas station cannot be queried."""


class PolygonGasStation:
    """Fee quotes from the Polygon gas station API (v2 format).

    The API reports fees in gwei:
    {"standard": {"maxFee": 30.5, "maxPriorityFee": 30.0}, ...}
    """

    def __init__(self, url: str, speed: str = "standard", timeout: float = 10.0) -> None:
        self.url = url
        self.speed = speed
        self.timeout = timeout

    def __call__(self) -> GasFees:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(self.url, headers={"Accept": "application/json"})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise GasStationError(
                f"HTTP error querying gas station {self.url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise GasStationError(f"Network error querying gas station: {e}") from e
        except ValueError as e:
            raise GasStationError(f"Invalid JSON from gas station {self.url}") from e

        tier = data.get(self.speed) if isinstance(data, dict) else None
        if not isinstance(tier, dict):
            raise GasStationError(f"Gas station response has no '{self.speed}' tier")
        return GasFees(
            max_fee_per_gas=_gwei_to_wei(tier.get("maxFee")),
            max_priority_fee_per_gas=_gwei_to_wei(tier.get("maxPriorityFee")),
        )

    def __repr__(self) -> str:
        return f"PolygonGasStation({self.url!r})"


def _gwei_to_wei(value: Any) -> int | None:
    if value is None:
        return None
    return int((Decimal(str(value)) * GWEI).to_integral_value())


@dataclass(frozen=True)
class ChainInfo:
    """Static description of a supported chain."""

    chain_id: int
    name: str
    currency: str
    rpc_url: str
    gas_station: Optional[GasStation] = None


@dataclass(frozen=True)
class ChainBinding:
    """Binds a credential to a token registry on one chain."""

    chain_id: int
    currency: str
    registry_address: str
    rpc_url: str
    gas_station: Optional[GasStation] = None

    def credential_status(self) -> dict[str, Any]:
        """The credentialStatus block recorded in the credential."""
        return {
            "type": "TransferableRecords",
            "chain": self.currency,
            "chainId": self.chain_id,
            "tokenRegistry": self.registry_address,
            "rpcProviderUrl": self.rpc_url,
        }


SUPPORTED_CHAINS: dict[str, ChainInfo] = {
    str(info.chain_id): info
    for info in (
        ChainInfo(1, "Ethereum", "ETH", "https://ethereum-rpc.publicnode.com"),
        ChainInfo(11155111, "Sepolia", "ETH", "https://ethereum-sepolia-rpc.publicnode.com"),
        ChainInfo(
            137, "Polygon", "POL", "https://polygon-rpc.com",
            PolygonGasStation("https://gasstation.polygon.technology/v2"),
        ),
        ChainInfo(
            80002, "Polygon Amoy", "POL", "https://rpc-amoy.polygon.technology",
            PolygonGasStation("https://gasstation.polygon.technology/amoy"),
        ),
        ChainInfo(50, "XDC Network", "XDC", "https://rpc.xinfin.network"),
        ChainInfo(51, "XDC Apothem", "XDC", "https://rpc.apothem.network"),
        ChainInfo(101010, "Stability", "FREE", "https://rpc.stabilityprotocol.com/zgt/tradeTrust"),
        ChainInfo(20180427, "Stability Testnet", "FREE", "https://rpc.testnet.stabilityprotocol.com/zgt/tradeTrust"),
    )
}


def get_chain(chain_key: str | int) -> ChainInfo:
    """Look up a supported chain by its numeric id.

    Raises:
        KeyError: If the chain is not supported.
    """
    key = str(chain_key).strip()
    if key not in SUPPORTED_CHAINS:
        raise KeyError(f"Unsupported chain: {chain_key}")
    return SUPPORTED_CHAINS[key]
