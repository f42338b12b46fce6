"""
Configuration for the Timelock SDK: bundled network definitions and
submission settings.
"""
import importlib.resources
import json
import logging
import os
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, Field

from .estimator import DEFAULT_BUFFER_RATIO, DEFAULT_FALLBACK_GAS_LIMIT
from .executor import DEFAULT_ATTEMPT_TIMEOUT, DEFAULT_BACKOFF_UNIT, DEFAULT_MAX_ATTEMPTS
from .fees import DEFAULT_FALLBACK_GAS_PRICE_WEI

logger = logging.getLogger(__name__)


class NetworkConfig:
    """Network definitions bundled with the SDK (networks.json)."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load all network definitions, caching them after the first read.

        Returns:
            Mapping of network name to its configuration
        """
        if cls._networks_cache is None:
            resource = importlib.resources.files("timelock_sdk").joinpath("networks.json")
            with resource.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, name: str) -> Dict[str, Any]:
        """
        Get the configuration of a single network.

        Raises:
            ValueError: If the network is unknown (message lists the known ones)
        """
        networks = cls.load_networks()
        if name not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network '{name}'. Available networks: {available}")
        return networks[name]

    @classmethod
    def get_rpc_url(cls, name: str) -> str:
        """RPC URL for ``name``; TIMELOCK_RPC_URL overrides the bundled value."""
        override = os.environ.get("TIMELOCK_RPC_URL")
        if override:
            logger.debug(f"Using RPC URL from TIMELOCK_RPC_URL for network {name}")
            return override
        return cls.get_network(name)["rpc"]

    @classmethod
    def get_chain_id(cls, name: str) -> int:
        return int(cls.get_network(name)["chainId"])


class SubmissionSettings(BaseModel):
    """Tunables for fee fallback, gas buffering and retries."""
    max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1)
    attempt_timeout: float = Field(DEFAULT_ATTEMPT_TIMEOUT, gt=0)
    backoff_unit: float = Field(DEFAULT_BACKOFF_UNIT, ge=0)
    buffer_ratio: float = Field(DEFAULT_BUFFER_RATIO, ge=0)
    fallback_gas_limit: int = Field(DEFAULT_FALLBACK_GAS_LIMIT, gt=0)
    fallback_gas_price_wei: int = Field(DEFAULT_FALLBACK_GAS_PRICE_WEI, gt=0)

    # Environment variable for each field
    ENV_VARS: ClassVar[Dict[str, str]] = {
        "max_attempts": "TIMELOCK_MAX_ATTEMPTS",
        "attempt_timeout": "TIMELOCK_ATTEMPT_TIMEOUT",
        "backoff_unit": "TIMELOCK_BACKOFF_UNIT",
        "buffer_ratio": "TIMELOCK_GAS_BUFFER",
        "fallback_gas_limit": "TIMELOCK_FALLBACK_GAS_LIMIT",
        "fallback_gas_price_wei": "TIMELOCK_FALLBACK_GAS_PRICE_WEI",
    }

    @classmethod
    def from_env(cls, defaults: Optional[Dict[str, Any]] = None, **overrides: Any) -> "SubmissionSettings":
        """
        Build settings from TIMELOCK_* environment variables.

        Precedence: explicit keyword overrides, then the environment, then
        ``defaults``, then the field defaults.

        Raises:
            pydantic.ValidationError: If a value is malformed or out of range
        """
        values: Dict[str, Any] = dict(defaults or {})
        for field_name, env_var in cls.ENV_VARS.items():
            raw = os.environ.get(env_var)
            if raw is not None and raw != "":
                values[field_name] = raw
        values.update(overrides)
        return cls.model_validate(values)

    @classmethod
    def for_network(cls, name: str, **overrides: Any) -> "SubmissionSettings":
        """Settings whose fallback gas price is the network's default gas price."""
        network = NetworkConfig.get_network(name)
        return cls.from_env(defaults={"fallback_gas_price_wei": network["gasPriceWei"]}, **overrides)
