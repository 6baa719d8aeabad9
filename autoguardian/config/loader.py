"""
Configuration management and loading.

Handles application settings and environment variables. Settings come from
an optional YAML file; secrets only ever come from the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from autoguardian.storage.db import DEFAULT_DB_PATH

CONFIG_PATH_ENV = "AUTOGUARDIAN_CONFIG"
ANALYSIS_ENDPOINTS = ("symptom", "obd", "quote")
BILLABLE_PLANS = ("pro", "shop")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ModelConfig:
    """Model name and per-endpoint output bounds."""
    name: str = "gpt-4o"
    max_tokens: Dict[str, int] = field(
        default_factory=lambda: {"symptom": 2048, "obd": 2048, "quote": 3000}
    )

    def __post_init__(self):
        """Validate model settings."""
        if not self.name or not self.name.strip():
            raise ValueError("model.name cannot be empty")
        for endpoint, tokens in self.max_tokens.items():
            if tokens <= 0:
                raise ValueError(f"model.max_tokens.{endpoint} must be > 0")


@dataclass(frozen=True)
class QuotaConfig:
    free_tier_limit: int = 3

    def __post_init__(self):
        if self.free_tier_limit <= 0:
            raise ValueError("quota.free_tier_limit must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class PlanPrices:
    """Stripe price ids for one plan."""
    monthly: Optional[str] = None
    annual: Optional[str] = None

    def price_for(self, annual: bool) -> Optional[str]:
        return self.annual if annual else self.monthly


@dataclass(frozen=True)
class BillingConfig:
    """Stripe settings. Keys are read from the environment."""
    plans: Dict[str, PlanPrices] = field(
        default_factory=lambda: {plan: PlanPrices() for plan in BILLABLE_PLANS}
    )
    default_origin: str = "https://autoguardian.vercel.app"
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    model: ModelConfig = field(default_factory=ModelConfig)
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    log_level: str = "INFO"


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load and validate application configuration.

    The YAML file is optional; without one (and without
    ``AUTOGUARDIAN_CONFIG``) defaults apply. Stripe keys and price ids are
    read from the environment.

    Args:
        path: Path to YAML configuration file
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    env = os.environ if env is None else env
    path = path or env.get(CONFIG_PATH_ENV)

    raw_config: Dict[str, Any] = {}
    if path:
        raw_config = _read_yaml(path)

    allowed_top_keys = {'model', 'quota', 'storage', 'billing', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return AppConfig(
        model=_parse_model(_section(raw_config, 'model')),
        quota=_parse_quota(_section(raw_config, 'quota')),
        storage=_parse_storage(_section(raw_config, 'storage')),
        billing=_parse_billing(_section(raw_config, 'billing'), env),
        log_level=_parse_logging(_section(raw_config, 'logging')),
    )


def _read_yaml(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")
    return raw_config


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name, {})
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _positive_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{path}' must be a positive integer")
    return value


def _parse_model(data: Dict[str, Any]) -> ModelConfig:
    _check_keys(data, {'name', 'max_tokens'}, 'model')
    defaults = ModelConfig()

    name = data.get('name', defaults.name)
    if not isinstance(name, str):
        raise ValueError("'model.name' must be a string")

    max_tokens = dict(defaults.max_tokens)
    tokens_data = data.get('max_tokens', {})
    if not isinstance(tokens_data, dict):
        raise ValueError("'model.max_tokens' must be a dictionary")
    _check_keys(tokens_data, set(ANALYSIS_ENDPOINTS), 'model.max_tokens')
    for endpoint, tokens in tokens_data.items():
        max_tokens[endpoint] = _positive_int(tokens, f"model.max_tokens.{endpoint}")

    return ModelConfig(name=name, max_tokens=max_tokens)


def _parse_quota(data: Dict[str, Any]) -> QuotaConfig:
    _check_keys(data, {'free_tier_limit'}, 'quota')
    if 'free_tier_limit' not in data:
        return QuotaConfig()
    return QuotaConfig(free_tier_limit=_positive_int(data['free_tier_limit'], 'quota.free_tier_limit'))


def _parse_storage(data: Dict[str, Any]) -> StorageConfig:
    _check_keys(data, {'db_path'}, 'storage')
    db_path = data.get('db_path', DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'storage.db_path' must be a non-empty string")
    return StorageConfig(db_path=db_path)


def _parse_billing(data: Dict[str, Any], env: Mapping[str, str]) -> BillingConfig:
    _check_keys(data, {'plans', 'default_origin'}, 'billing')
    defaults = BillingConfig()

    plans_data = data.get('plans', {})
    if not isinstance(plans_data, dict):
        raise ValueError("'billing.plans' must be a dictionary")
    _check_keys(plans_data, set(BILLABLE_PLANS), 'billing.plans')

    plans = {}
    for plan in BILLABLE_PLANS:
        prices = plans_data.get(plan) or {}
        if not isinstance(prices, dict):
            raise ValueError(f"'billing.plans.{plan}' must be a dictionary")
        _check_keys(prices, {'monthly', 'annual'}, f"billing.plans.{plan}")
        plans[plan] = PlanPrices(
            monthly=env.get(f"STRIPE_{plan.upper()}_MONTHLY_PRICE_ID") or prices.get('monthly'),
            annual=env.get(f"STRIPE_{plan.upper()}_ANNUAL_PRICE_ID") or prices.get('annual'),
        )

    default_origin = data.get('default_origin', defaults.default_origin)
    if not isinstance(default_origin, str) or not default_origin.startswith(("http://", "https://")):
        raise ValueError("'billing.default_origin' must be an http(s) URL")

    return BillingConfig(
        plans=plans,
        default_origin=default_origin.rstrip("/"),
        secret_key=env.get("STRIPE_SECRET_KEY") or None,
        webhook_secret=env.get("STRIPE_WEBHOOK_SECRET") or None,
    )


def _parse_logging(data: Dict[str, Any]) -> str:
    _check_keys(data, {'level'}, 'logging')
    level = data.get('level', 'INFO')
    if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of: {list(LOG_LEVELS)}")
    return level.upper()
