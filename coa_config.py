import os, re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import yaml

DEFAULT_CONFIG_PATH = Path("config.yaml")
DEFAULT_BASE_URL = "https://spc.adkk.co.kr:8091"

ENV_OVERRIDES = {
    "username": "ADEKA_ID",
    "password": "ADEKA_PASSWORD",
    "base_url": "BASE_URL",
    "chat_webhook_url": "GOOGLE_CHAT_WEBHOOK_URL",
    "chat_thread_key": "GOOGLE_CHAT_THREAD_KEY",
}


BROWSERS = ("chromium", "firefox", "webkit")

# minimum accepted value per integer setting
INT_SETTINGS = {
    "workers": 1,
    "target_lot_count": 1,
    "stagnation_threshold": 1,
    "settle_ms": 0,
    "discovery_timeout_ms": 1,
    "row_access_attempts": 1,
    "scroll_distance": 1,
    "lot_column": 0,
    "first_row_timeout_ms": 1,
    "network_idle_timeout_ms": 1,
    "artifact_timeout_ms": 1,
    "download_timeout_ms": 1,
    "navigation_timeout_ms": 1,
    "reload_attempts": 1,
    "reload_backoff_ms": 0,
}


class ConfigError(Exception):
    pass


def _int_setting(name, value, minimum):
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if isinstance(value, float) and value != number:
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {number}")
    return number


@dataclass
class ProductConfig:
    name: str
    slug: str
    required_items: List[str] = field(default_factory=list)
    max_lots: Optional[int] = None


@dataclass
class Settings:
    products: List[ProductConfig]
    username: str = ""
    password: str = ""
    base_url: str = DEFAULT_BASE_URL
    browser: str = "chromium"
    headless: bool = True
    ignore_https_errors: bool = True
    workers: int = 1

    target_lot_count: int = 30
    stagnation_threshold: int = 3
    settle_ms: int = 1500
    discovery_timeout_ms: int = 300000
    row_access_attempts: int = 10
    probe_mode: str = "last_row"
    scroll_distance: int = 1800

    row_selector: str = "tbody > tr"
    lot_column: int = 1
    generate_button: str = "출력"
    login_marker: str = "ADEKA"
    artifact_pattern: str = r"{product} COA_.*\.xlsx"

    first_row_timeout_ms: int = 20000
    network_idle_timeout_ms: int = 120000
    artifact_timeout_ms: int = 600000
    download_timeout_ms: int = 120000
    navigation_timeout_ms: int = 60000
    reload_attempts: int = 3
    reload_backoff_ms: int = 2000

    downloads_dir: Path = Path("downloads")
    diagnostics_dir: Path = Path("test-results")
    results_dir: Path = Path("test-results")
    storage_state: Path = Path("storageState.json")

    chat_webhook_url: str = ""
    chat_thread_key: str = ""

    def product(self, name):
        for p in self.products:
            if p.name == name:
                return p
        raise ConfigError(f"unknown product: {name}")

    def product_url(self, product: ProductConfig) -> str:
        return f"{self.base_url.rstrip('/')}/#/process/shipout/{product.slug}"

    def lot_cap(self, product: ProductConfig) -> int:
        return product.max_lots or self.target_lot_count

    def generate_button_name(self):
        """Button text matched as a substring, or a compiled regex for ``re:`` values."""
        if self.generate_button.startswith("re:"):
            return re.compile(self.generate_button[3:])
        return self.generate_button

    def require_credentials(self):
        if not self.username or not self.password:
            raise ConfigError(
                "credentials missing: set ADEKA_ID and ADEKA_PASSWORD (or username/password in the config file)"
            )


def _parse_products(raw):
    if not raw:
        raise ConfigError("config lists no products")
    products = []
    for entry in raw:
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ConfigError(f"invalid product entry: {entry!r}")
        name = str(entry["name"])
        max_lots = entry.get("max_lots")
        if max_lots is not None:
            max_lots = _int_setting(f"{name}.max_lots", max_lots, 1)
        products.append(ProductConfig(
            name=name,
            slug=str(entry.get("slug") or name.lower()),
            required_items=[str(x) for x in entry.get("required_items") or []],
            max_lots=max_lots,
        ))
    return products


def settings_from_dict(cfg, env=None):
    env = os.environ if env is None else env
    cfg = dict(cfg or {})
    for key, var in ENV_OVERRIDES.items():
        if env.get(var):
            cfg[key] = env[var]
    probe = cfg.pop("probe", None) or {}
    if probe.get("mode"):
        cfg["probe_mode"] = probe["mode"]
    if "scroll_distance" in probe:
        cfg["scroll_distance"] = probe["scroll_distance"]
    products = _parse_products(cfg.pop("products", None))
    known = set(Settings.__dataclass_fields__)
    unknown = sorted(k for k in cfg if k not in known)
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
    for key in ("downloads_dir", "diagnostics_dir", "results_dir", "storage_state"):
        if key in cfg:
            cfg[key] = Path(cfg[key]).expanduser()
    for key, minimum in INT_SETTINGS.items():
        if key in cfg:
            cfg[key] = _int_setting(key, cfg[key], minimum)
    settings = Settings(products=products, **cfg)
    if settings.probe_mode not in ("last_row", "wheel"):
        raise ConfigError(f"probe.mode must be last_row or wheel, got {settings.probe_mode!r}")
    if settings.browser not in BROWSERS:
        raise ConfigError(f"browser must be one of {', '.join(BROWSERS)}, got {settings.browser!r}")
    try:
        settings.generate_button_name()
    except re.error as e:
        raise ConfigError(f"invalid generate_button pattern: {e}") from e
    return settings


def load_settings(path=DEFAULT_CONFIG_PATH, env=None):
    path = Path(path)
    try:
        cfg = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(cfg, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return settings_from_dict(cfg, env=env)
