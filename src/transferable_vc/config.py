"""
Runtime configuration.

Settings are read from the environment once at startup into an immutable
model. The chain binding and key material derived from them are passed
explicitly into the issuer and verifier.
"""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, Field, field_validator

from transferable_vc.chain import ChainBinding, get_chain
from transferable_vc.errors import ConfigurationMissing
from transferable_vc.keys import KeyMaterialError, KeyPair, load_key_pairs

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Issuer and verifier settings."""

    NET: str = Field(
        "50",
        description="Numeric id of the chain the registry lives on",
    )

    TOKEN_REGISTRY_ADDRESS: str = Field(
        "",
        description="Address of the token registry contract",
    )

    WALLET_PRIVATE_KEY: str = Field(
        "",
        description="Private key of the minting wallet",
        repr=False,
    )

    DID_KEY_PAIRS: str = Field(
        "",
        description="JSON key pair(s) used to sign credentials",
        repr=False,
    )

    RPC_URL: str = Field(
        "",
        description="Overrides the chain's default RPC endpoint",
    )

    ENVIRONMENT: str = Field(
        "production",
        description="Deployment environment; error details are hidden in production",
    )

    ALLOW_ZERO_GAS_FEES: bool = Field(
        False,
        description=(
            "Submit with zero fee fields when the gas station returns a "
            "degenerate quote, instead of refusing to mint"
        ),
    )

    HTTP_TIMEOUT: float = Field(
        30.0,
        description="Timeout in seconds for DID, status list and RPC requests",
    )

    RECEIPT_TIMEOUT: float = Field(
        120.0,
        description="Seconds to wait for a mint transaction to be mined",
    )

    @field_validator("NET")
    @classmethod
    def validate_net(cls, v: str) -> str:
        try:
            get_chain(v)
        except KeyError as e:
            raise ValueError(str(e.args[0])) from e
        return v.strip()

    @field_validator("HTTP_TIMEOUT", "RECEIPT_TIMEOUT")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def require_issuance(self) -> None:
        """Check that everything needed to issue is configured.

        Raises:
            ConfigurationMissing: Naming every missing variable.
        """
        missing = [
            name
            for name in ("WALLET_PRIVATE_KEY", "DID_KEY_PAIRS", "TOKEN_REGISTRY_ADDRESS")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationMissing(
                f"Missing required configuration: {', '.join(missing)}"
            )

    def chain_binding(self, registry_address: str | None = None) -> ChainBinding:
        """Build the immutable chain binding for the configured network."""
        info = get_chain(self.NET)
        rpc_url = self.RPC_URL or info.rpc_url
        logger.debug("Binding to %s (chain id %s)", info.name, info.chain_id)
        return ChainBinding(
            chain_id=info.chain_id,
            currency=info.currency,
            registry_address=registry_address or self.TOKEN_REGISTRY_ADDRESS,
            rpc_url=rpc_url,
            gas_station=info.gas_station,
        )

    def key_pair(self) -> KeyPair:
        """The first configured signing key pair.

        Raises:
            ConfigurationMissing: If no usable key pair is configured.
        """
        if not self.DID_KEY_PAIRS:
            raise ConfigurationMissing("Missing required configuration: DID_KEY_PAIRS")
        try:
            return load_key_pairs(self.DID_KEY_PAIRS)[0]
        except KeyMaterialError as e:
            raise ConfigurationMissing(f"DID_KEY_PAIRS is unusable: {e}") from e

    @classmethod
    def from_env(cls) -> Settings:
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """

        def env_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.lower() in {"1", "true", "yes", "on"}

        return cls(
            NET=os.getenv("NET", "50"),
            TOKEN_REGISTRY_ADDRESS=os.getenv("TOKEN_REGISTRY_ADDRESS", ""),
            WALLET_PRIVATE_KEY=os.getenv("WALLET_PRIVATE_KEY", ""),
            DID_KEY_PAIRS=os.getenv("DID_KEY_PAIRS", ""),
            RPC_URL=os.getenv("RPC_URL", ""),
            ENVIRONMENT=os.getenv("ENVIRONMENT", "production"),
            ALLOW_ZERO_GAS_FEES=env_bool("ALLOW_ZERO_GAS_FEES", False),
            HTTP_TIMEOUT=float(os.getenv("HTTP_TIMEOUT", "30")),
            RECEIPT_TIMEOUT=float(os.getenv("RECEIPT_TIMEOUT", "120")),
        )

    model_config = {
        "frozen": True,
    }
