"""
Configuration management and loading.

Pricing, plan tiers and plan-fit thresholds are product constants with
built-in defaults; a YAML file may override any of them.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ..common.errors import ConfigError
from ..common.logging import LogFormat, LogLevel
from ..core.aggregator import DEFAULT_DATA_DIR
from ..core.plan_fit import DEFAULT_PLANS, DEFAULT_THRESHOLDS, PlanDefinition, PlanFitThresholds
from ..core.pricing import DEFAULT_MODEL_KEY, PRICING_TABLE, ModelPricing, PricingTable

DEFAULT_HISTORY_DB = Path.home() / ".llm-usage" / "history.db"


@dataclass(frozen=True)
class LoggingConfig:
    level: LogLevel = LogLevel.WARNING
    format: LogFormat = LogFormat.CONSOLE


@dataclass(frozen=True)
class AnalyzerConfig:
    """Complete analyzer configuration."""
    data_dir: Path = DEFAULT_DATA_DIR
    history_db: Path = DEFAULT_HISTORY_DB
    pricing: PricingTable = PRICING_TABLE
    plans: Tuple[PlanDefinition, ...] = DEFAULT_PLANS
    plan_fit: PlanFitThresholds = DEFAULT_THRESHOLDS
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_plan(self, name: str) -> Optional[PlanDefinition]:
        """Look up a plan tier by name, case-insensitively."""
        for plan in self.plans:
            if plan.name.lower() == name.lower():
                return plan
        return None


def default_config() -> AnalyzerConfig:
    return AnalyzerConfig()


def load_config(path: str) -> AnalyzerConfig:
    """Load and validate analyzer configuration from a YAML file.

    Strict validation ensures no silent misconfiguration: unknown keys are
    rejected rather than ignored.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AnalyzerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ConfigError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a mapping")

    allowed_top_keys = {'data_dir', 'history_db', 'pricing', 'plans', 'plan_fit', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ConfigError(f"Unknown configuration keys: {unknown_keys}")

    defaults = default_config()
    return AnalyzerConfig(
        data_dir=_parse_path(raw_config, 'data_dir', defaults.data_dir),
        history_db=_parse_path(raw_config, 'history_db', defaults.history_db),
        pricing=_parse_pricing(raw_config.get('pricing'), defaults.pricing),
        plans=_parse_plans(raw_config.get('plans'), defaults.plans),
        plan_fit=_parse_plan_fit(raw_config.get('plan_fit'), defaults.plan_fit),
        logging=_parse_logging(raw_config.get('logging'), defaults.logging),
    )


def _parse_path(raw: Dict[str, Any], key: str, default: Path) -> Path:
    if key not in raw:
        return default
    value = raw[key]
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string")
    return Path(value).expanduser()


def _parse_price(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"'{path}' must be a number")
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ConfigError(f"'{path}' must be a number")
    if not price.is_finite():
        raise ConfigError(f"'{path}' must be a finite number")
    if price < 0:
        raise ConfigError(f"'{path}' cannot be negative")
    return price


def _parse_pricing(data: Any, base: PricingTable) -> PricingTable:
    """Merge per-model overrides over the built-in table.

    Each entry is {input, output} in USD per million tokens.
    """
    if data is None:
        return base
    if not isinstance(data, dict):
        raise ConfigError("'pricing' must be a dictionary")

    overrides: Dict[str, ModelPricing] = {}
    for model, prices in data.items():
        path = f"pricing.{model}"
        if not isinstance(prices, dict):
            raise ConfigError(f"'{path}' must be a dictionary")
        unknown = set(prices.keys()) - {'input', 'output'}
        if unknown:
            raise ConfigError(f"Unknown keys in {path}: {unknown}")
        for key in ('input', 'output'):
            if key not in prices:
                raise ConfigError(f"Missing required '{key}' in {path}")
        overrides[str(model)] = ModelPricing(
            input_per_million=_parse_price(prices['input'], f"{path}.input"),
            output_per_million=_parse_price(prices['output'], f"{path}.output"),
        )

    table = base.with_overrides(overrides)
    if DEFAULT_MODEL_KEY not in table.prices:
        raise ConfigError(f"Pricing must include a '{DEFAULT_MODEL_KEY}' entry")
    return table


def _parse_plans(data: Any, default: Tuple[PlanDefinition, ...]) -> Tuple[PlanDefinition, ...]:
    """Parse the three plan tiers; all three are replaced together."""
    if data is None:
        return default
    if not isinstance(data, list):
        raise ConfigError("'plans' must be a list")
    if len(data) != 3:
        raise ConfigError(f"'plans' must define exactly 3 tiers, got {len(data)}")

    plans = []
    for index, entry in enumerate(data):
        path = f"plans[{index}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"'{path}' must be a dictionary")
        allowed_keys = {'name', 'price', 'messages_per_day'}
        unknown = set(entry.keys()) - allowed_keys
        if unknown:
            raise ConfigError(f"Unknown keys in {path}: {unknown}")
        missing = allowed_keys - set(entry.keys())
        if missing:
            raise ConfigError(f"Missing required keys in {path}: {missing}")

        name = entry['name']
        limit = entry['messages_per_day']
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"'{path}.name' must be a non-empty string")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ConfigError(f"'{path}.messages_per_day' must be a positive integer")
        plans.append(PlanDefinition(
            name=name.strip(),
            price_per_month=float(_parse_price(entry['price'], f"{path}.price")),
            messages_per_day_limit=limit,
        ))

    if len({plan.name for plan in plans}) != len(plans):
        raise ConfigError("Plan names must be unique")
    return tuple(sorted(plans, key=lambda plan: plan.messages_per_day_limit))


def _parse_plan_fit(data: Any, default: PlanFitThresholds) -> PlanFitThresholds:
    if data is None:
        return default
    if not isinstance(data, dict):
        raise ConfigError("'plan_fit' must be a dictionary")
    allowed_keys = {'near_limit_ratio', 'high_confidence_days', 'medium_confidence_days'}
    unknown = set(data.keys()) - allowed_keys
    if unknown:
        raise ConfigError(f"Unknown keys in plan_fit: {unknown}")

    ratio = data.get('near_limit_ratio', default.near_limit_ratio)
    high = data.get('high_confidence_days', default.high_confidence_days)
    medium = data.get('medium_confidence_days', default.medium_confidence_days)
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)):
        raise ConfigError("'plan_fit.near_limit_ratio' must be a number")
    for key, value in (('high_confidence_days', high), ('medium_confidence_days', medium)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"'plan_fit.{key}' must be an integer")

    try:
        return PlanFitThresholds(
            near_limit_ratio=float(ratio),
            high_confidence_days=high,
            medium_confidence_days=medium,
        )
    except ValueError as e:
        raise ConfigError(f"Invalid plan_fit: {e}")


def _parse_logging(data: Any, default: LoggingConfig) -> LoggingConfig:
    if data is None:
        return default
    if not isinstance(data, dict):
        raise ConfigError("'logging' must be a dictionary")
    unknown = set(data.keys()) - {'level', 'format'}
    if unknown:
        raise ConfigError(f"Unknown keys in logging: {unknown}")

    try:
        level = LogLevel(str(data.get('level', default.level.value)).upper())
    except ValueError:
        raise ConfigError(f"'logging.level' must be one of: {[lvl.value for lvl in LogLevel]}")
    try:
        fmt = LogFormat(str(data.get('format', default.format.value)).lower())
    except ValueError:
        raise ConfigError(f"'logging.format' must be one of: {[f.value for f in LogFormat]}")
    return LoggingConfig(level=level, format=fmt)
