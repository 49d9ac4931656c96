"""Engine configuration loaded from config.yaml."""

import logging
import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from quotesourcing.errors import ConfigError
from quotesourcing.models import Availability, QualityTier

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-9


@dataclass
class SelectionWeights:
    """Weights of the five selection factors. Must sum to 1.0."""

    price: float = 0.30
    availability: float = 0.25
    delivery: float = 0.20
    quality: float = 0.15
    relationship: float = 0.10

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def validate(self) -> None:
        """Raise ConfigError unless every weight is in [0, 1] and they sum to 1.0."""
        for name, value in self.as_dict().items():
            if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ConfigError(f"Selection weight '{name}' must be within [0, 1], got {value!r}")
        total = math.fsum(self.as_dict().values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigError(f"Selection weights must sum to 1.0, got {total}")


@dataclass
class ScoringTables:
    """Lookup tables and constants behind the selection sub-scores."""

    availability: dict[Availability, float] = field(
        default_factory=lambda: {
            Availability.IN_STOCK: 100,
            Availability.LIMITED_STOCK: 70,
            Availability.SPECIAL_ORDER: 40,
            Availability.OUT_OF_STOCK: 0,
            Availability.UNKNOWN: 50,
        }
    )
    quality: dict[QualityTier, float] = field(
        default_factory=lambda: {
            QualityTier.OEM: 100,
            QualityTier.OEM_EQUIVALENT: 85,
            QualityTier.PREMIUM: 90,
            QualityTier.STANDARD: 70,
            QualityTier.ECONOMY: 50,
            QualityTier.REMANUFACTURED: 75,
            QualityTier.USED: 40,
            QualityTier.UNKNOWN: 60,
        }
    )
    urgent_price_score: float = 70
    price_divisor: float = 10  # default decay: 100 - price / 10
    budget_price_divisor: float = 5  # steeper decay when budget sensitive

    def validate(self) -> None:
        missing_avail = [a.value for a in Availability if a not in self.availability]
        missing_quality = [q.value for q in QualityTier if q not in self.quality]
        if missing_avail or missing_quality:
            raise ConfigError(f"Scoring tables incomplete: {missing_avail + missing_quality}")
        if self.budget_price_divisor >= self.price_divisor:
            raise ConfigError("budget_price_divisor must be smaller than price_divisor (steeper decay)")
        if self.price_divisor <= 0 or self.budget_price_divisor <= 0:
            raise ConfigError("Price divisors must be positive")


@dataclass
class CacheConfig:
    ttl_hours: float = 24.0


@dataclass
class CoordinatorConfig:
    policy: str = "thorough"  # 'thorough' or 'fast'
    escalate_to_calls: bool = True
    max_calls: int = 3
    wait_for_calls: bool = False


@dataclass
class CallConfig:
    timeout_seconds: float = 600.0
    shop_name: str = "VHICL Pro Auto Service"
    advisor_name: str = "Alex"
    vapi_api_key: str = ""
    vapi_phone_id: str = ""
    vapi_base_url: str = "https://api.vapi.ai"


@dataclass
class SiteCredentials:
    username: str = ""
    password: str = ""


@dataclass
class ScrapingConfig:
    enabled: bool = True
    headless: bool = True
    step_timeout_seconds: float = 30.0
    attempt_timeout_seconds: float = 180.0
    nexpart: SiteCredentials = field(default_factory=SiteCredentials)
    autolabor: SiteCredentials = field(default_factory=SiteCredentials)


@dataclass
class RemoteConfig:
    enabled: bool = True
    orderlink_url: str = "https://api.nexpart.com/orderlink.asmx"
    catlink_url: str = "https://api.nexpart.com/catlink.asmx"
    aces_url: str = "https://api.nexpart.com/aces.asmx"
    account: str = ""
    password: str = ""
    customer_id: str = ""
    account_number: str = ""
    timeout_seconds: float = 20.0


@dataclass
class ShopConfig:
    labor_rate: float = 100.0
    labor_multiplier: float = 1.0
    parts_markup: float = 0.0


@dataclass
class EngineConfig:
    """Top-level configuration for the sourcing engine."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    weights: SelectionWeights = field(default_factory=SelectionWeights)
    tables: ScoringTables = field(default_factory=ScoringTables)
    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
    calls: CallConfig = field(default_factory=CallConfig)
    scraping: ScrapingConfig = field(default_factory=ScrapingConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    shop: ShopConfig = field(default_factory=ShopConfig)
    vendors: list[dict[str, Any]] = field(default_factory=list)
    logs_dir: Path = Path("output/logs")

    def validate(self) -> None:
        self.weights.validate()
        self.tables.validate()
        if self.cache.ttl_hours <= 0:
            raise ConfigError("cache.ttl_hours must be positive")
        if self.coordinator.policy not in ("thorough", "fast"):
            raise ConfigError(f"Unknown coordinator policy: {self.coordinator.policy}")
        if self.calls.timeout_seconds <= 0:
            raise ConfigError("calls.timeout_seconds must be positive")


# Environment variables override file-based credentials
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "NEXPART_USERNAME": ("scraping", "nexpart", "username"),
    "NEXPART_PASSWORD": ("scraping", "nexpart", "password"),
    "AUTOLABOR_USERNAME": ("scraping", "autolabor", "username"),
    "AUTOLABOR_PASSWORD": ("scraping", "autolabor", "password"),
    "NEXPART_ACCOUNT": ("remote", "account"),
    "NEXPART_API_PASSWORD": ("remote", "password"),
    "NEXPART_CUSTOMER_ID": ("remote", "customer_id"),
    "NEXPART_ACCOUNT_NUMBER": ("remote", "account_number"),
    "VAPI_API_KEY": ("calls", "vapi_api_key"),
    "VAPI_PHONE_ID": ("calls", "vapi_phone_id"),
}


def _build(cls: type, data: dict[str, Any] | None, section: str) -> Any:
    """Instantiate a flat config dataclass from a YAML mapping."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in '{section}': {sorted(unknown)}")
    return cls(**{k: v for k, v in data.items() if k in known})


def _build_tables(data: dict[str, Any] | None) -> ScoringTables:
    tables = ScoringTables()
    if not data:
        return tables
    try:
        for name, score in (data.get("availability") or {}).items():
            tables.availability[Availability(name)] = float(score)
        for name, score in (data.get("quality") or {}).items():
            tables.quality[QualityTier(name)] = float(score)
    except ValueError as e:
        raise ConfigError(f"Invalid scoring table entry: {e}") from e
    for key in ("urgent_price_score", "price_divisor", "budget_price_divisor"):
        if key in data:
            setattr(tables, key, float(data[key]))
    return tables


def _build_scraping(data: dict[str, Any] | None) -> ScrapingConfig:
    data = dict(data or {})
    nexpart = _build(SiteCredentials, data.pop("nexpart", None), "scraping.nexpart")
    autolabor = _build(SiteCredentials, data.pop("autolabor", None), "scraping.autolabor")
    scraping: ScrapingConfig = _build(ScrapingConfig, data, "scraping")
    scraping.nexpart = nexpart
    scraping.autolabor = autolabor
    return scraping


def _apply_env(config: EngineConfig, environ: dict[str, str]) -> None:
    for var, path in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        target: Any = config
        for attr in path[:-1]:
            target = getattr(target, attr)
        setattr(target, path[-1], value)


def config_from_dict(raw: dict[str, Any], environ: dict[str, str] | None = None) -> EngineConfig:
    """Build and validate an EngineConfig from a parsed YAML mapping.

    Args:
        raw: Parsed configuration mapping.
        environ: Environment used for credential overrides. Defaults to os.environ.

    Returns:
        Validated EngineConfig.

    Raises:
        ConfigError: If any section fails validation.
    """
    selection = raw.get("selection") or {}
    config = EngineConfig(
        cache=_build(CacheConfig, raw.get("cache"), "cache"),
        weights=_build(SelectionWeights, selection.get("weights"), "selection.weights"),
        tables=_build_tables(selection.get("tables")),
        coordinator=_build(CoordinatorConfig, raw.get("coordinator"), "coordinator"),
        calls=_build(CallConfig, raw.get("calls"), "calls"),
        scraping=_build_scraping(raw.get("scraping")),
        remote=_build(RemoteConfig, raw.get("remote"), "remote"),
        shop=_build(ShopConfig, raw.get("shop"), "shop"),
        vendors=list(raw.get("vendors") or []),
        logs_dir=Path((raw.get("output") or {}).get("logs_dir", "output/logs")),
    )
    _apply_env(config, dict(os.environ) if environ is None else environ)
    config.validate()
    return config


def load_config(config_path: Path, environ: dict[str, str] | None = None) -> EngineConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml.
        environ: Optional environment mapping for credential overrides.

    Returns:
        Validated EngineConfig.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ConfigError: If the configuration is invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    return config_from_dict(raw, environ)
