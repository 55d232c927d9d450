"""
Environment-backed scraper configuration.

Every knob is namespaced by the upper-cased exchange name, e.g. for the
"Ayin" exchange: AYIN_REFRESH_DELAY, AYIN_SLEEP_TIMEOUT, AYIN_EVENTS_LIMIT,
AYIN_SWAP_CONTRACTS_LIMIT, AYIN_TARGET_SWAP_CONTRACT, AYIN_DEBUG,
AYIN_MAX_CONSECUTIVE_FAILURES, AYIN_CHANNEL_CAPACITY, AYIN_CHANNEL_POLICY,
AYIN_FACTORY_ADDRESS (pair factory used for pair discovery).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .domain.errors import ConfigError
from .domain.value_types import Address, BackpressurePolicy, Blockchain

DEFAULT_REFRESH_DELAY_MS = 400
DEFAULT_SLEEP_BETWEEN_CONTRACT_CALLS_MS = 1000
DEFAULT_EVENTS_LIMIT = 10
DEFAULT_SWAP_CONTRACTS_LIMIT = 100

DEFAULT_EXPLORER_URL = "https://backend.mainnet.alephium.org"
DEFAULT_NODE_URL = "https://node.mainnet.alephium.org"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}", e) from e


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"{key} must be a boolean, got {raw!r}")


@dataclass(slots=True, frozen=True)
class ScraperConfig:
    exchange_name: str
    blockchain: Blockchain
    refresh_delay: float = DEFAULT_REFRESH_DELAY_MS / 1000                         # seconds
    sleep_between_contract_calls: float = DEFAULT_SLEEP_BETWEEN_CONTRACT_CALLS_MS / 1000  # seconds
    events_limit: int = DEFAULT_EVENTS_LIMIT
    swap_contracts_limit: int = DEFAULT_SWAP_CONTRACTS_LIMIT
    target_swap_contract: Address | None = None
    debug: bool = False
    max_consecutive_failures: int = 0     # 0 = update errors never close the scraper
    channel_capacity: int = 0
    channel_policy: BackpressurePolicy = "block"
    explorer_url: str = DEFAULT_EXPLORER_URL
    node_url: str = DEFAULT_NODE_URL
    factory_address: Address | None = None

    @classmethod
    def from_env(
        cls,
        exchange_name: str,
        blockchain: str,
        env: Mapping[str, str] | None = None,
    ) -> "ScraperConfig":
        env = os.environ if env is None else env
        p = exchange_name.upper() + "_"
        target = env.get(p + "TARGET_SWAP_CONTRACT", "").strip()
        factory = env.get(p + "FACTORY_ADDRESS", "").strip()
        policy = env.get(p + "CHANNEL_POLICY", "block").strip().lower() or "block"
        if policy not in ("block", "drop_oldest", "reject"):
            raise ConfigError(f"{p}CHANNEL_POLICY must be block, drop_oldest or reject, got {policy!r}")
        cfg = cls(
            exchange_name=exchange_name,
            blockchain=Blockchain(blockchain),
            refresh_delay=_get_int(env, p + "REFRESH_DELAY", DEFAULT_REFRESH_DELAY_MS) / 1000,
            sleep_between_contract_calls=_get_int(env, p + "SLEEP_TIMEOUT", DEFAULT_SLEEP_BETWEEN_CONTRACT_CALLS_MS) / 1000,
            events_limit=_get_int(env, p + "EVENTS_LIMIT", DEFAULT_EVENTS_LIMIT),
            swap_contracts_limit=_get_int(env, p + "SWAP_CONTRACTS_LIMIT", DEFAULT_SWAP_CONTRACTS_LIMIT),
            target_swap_contract=Address(target) if target else None,
            debug=_get_bool(env, p + "DEBUG", False),
            max_consecutive_failures=_get_int(env, p + "MAX_CONSECUTIVE_FAILURES", 0),
            channel_capacity=_get_int(env, p + "CHANNEL_CAPACITY", 0),
            channel_policy=policy,  # type: ignore[arg-type]
            explorer_url=env.get("ALEPHIUM_EXPLORER_URL", DEFAULT_EXPLORER_URL).rstrip("/"),
            node_url=env.get("ALEPHIUM_NODE_URL", DEFAULT_NODE_URL).rstrip("/"),
            factory_address=Address(factory) if factory else None,
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.refresh_delay < 0 or self.sleep_between_contract_calls < 0:
            raise ConfigError("delays must be >= 0")
        if self.events_limit < 1:
            raise ConfigError("events_limit must be >= 1")
        if self.swap_contracts_limit < 1:
            raise ConfigError("swap_contracts_limit must be >= 1")
        if self.max_consecutive_failures < 0:
            raise ConfigError("max_consecutive_failures must be >= 0")
        if self.channel_capacity < 0:
            raise ConfigError("channel_capacity must be >= 0")
        if self.channel_policy != "block" and self.channel_capacity == 0:
            raise ConfigError(f"channel policy {self.channel_policy!r} needs a capacity >= 1")
