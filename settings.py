import json
import math
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv


SETTINGS_PATH = Path("tv_batch_settings.json")
ENV_PREFIX = "TVBATCH_"

DEFAULT_MAX_SYMBOLS = 50
DEFAULT_DELAY_BETWEEN_SYMBOLS_MS = 8000
DEFAULT_MIN_PNL_PERCENT = 13.0
DEFAULT_MIN_SHARPE_RATIO = 1.2
DEFAULT_REFRESH_APPEAR_TIMEOUT_MS = 3000
DEFAULT_REFRESH_POST_CLICK_MS = 10000
DEFAULT_EXPORT_DESTINATION = "tradingview_backtest.csv"
DEFAULT_START_URL = "https://www.tradingview.com/chart/"
DEFAULT_PROFILE_DIR = "profiles/tradingview"

# watchlist title -> market label, in the order they are tried
DEFAULT_WATCHLISTS: Dict[str, str] = {
    "A股可交易": "CN",
    "美股可交易": "US",
    "港股可交易": "HK",
}


def coerce_float(value: Any, default: float) -> float:
    """Return ``value`` as a finite float, or ``default`` when that is impossible."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def coerce_positive_int(value: Any, default: int) -> int:
    number = coerce_float(value, float("nan"))
    if math.isnan(number) or number <= 0:
        return default
    return int(number)


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_watchlists(value: Any) -> Dict[str, str]:
    if isinstance(value, dict):
        cleaned = {
            str(name).strip(): _coerce_text(group)
            for name, group in value.items()
            if str(name).strip()
        }
        if cleaned:
            return cleaned
    elif isinstance(value, list):
        # plain list of titles, no market label
        cleaned = {str(name).strip(): "" for name in value if isinstance(name, str) and name.strip()}
        if cleaned:
            return cleaned
    return dict(DEFAULT_WATCHLISTS)


@dataclass
class RunConfiguration:
    strategy_name: str = ""
    timeframe: str = ""
    backtest_from: str = ""
    backtest_to: str = ""
    max_symbols: int = DEFAULT_MAX_SYMBOLS
    delay_between_symbols_ms: int = DEFAULT_DELAY_BETWEEN_SYMBOLS_MS
    min_pnl_percent: float = DEFAULT_MIN_PNL_PERCENT
    min_sharpe_ratio: float = DEFAULT_MIN_SHARPE_RATIO
    export_destination: str = DEFAULT_EXPORT_DESTINATION
    watchlists: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_WATCHLISTS))
    refresh_appear_timeout_ms: int = DEFAULT_REFRESH_APPEAR_TIMEOUT_MS
    refresh_post_click_ms: int = DEFAULT_REFRESH_POST_CLICK_MS
    headless: bool = False
    start_url: str = DEFAULT_START_URL
    profile_dir: str = DEFAULT_PROFILE_DIR

    @classmethod
    def from_mapping(cls, raw: Optional[Dict[str, Any]]) -> "RunConfiguration":
        """Build a configuration from loosely typed input, defaulting every bad field."""
        raw = raw if isinstance(raw, dict) else {}
        return cls(
            strategy_name=_coerce_text(raw.get("strategy_name")),
            timeframe=_coerce_text(raw.get("timeframe")),
            backtest_from=_coerce_text(raw.get("backtest_from")),
            backtest_to=_coerce_text(raw.get("backtest_to")),
            max_symbols=coerce_positive_int(raw.get("max_symbols"), DEFAULT_MAX_SYMBOLS),
            delay_between_symbols_ms=coerce_positive_int(
                raw.get("delay_between_symbols_ms"), DEFAULT_DELAY_BETWEEN_SYMBOLS_MS
            ),
            min_pnl_percent=coerce_float(raw.get("min_pnl_percent"), DEFAULT_MIN_PNL_PERCENT),
            min_sharpe_ratio=coerce_float(raw.get("min_sharpe_ratio"), DEFAULT_MIN_SHARPE_RATIO),
            export_destination=_coerce_text(raw.get("export_destination")) or DEFAULT_EXPORT_DESTINATION,
            watchlists=_coerce_watchlists(raw.get("watchlists")),
            refresh_appear_timeout_ms=coerce_positive_int(
                raw.get("refresh_appear_timeout_ms"), DEFAULT_REFRESH_APPEAR_TIMEOUT_MS
            ),
            refresh_post_click_ms=coerce_positive_int(
                raw.get("refresh_post_click_ms"), DEFAULT_REFRESH_POST_CLICK_MS
            ),
            headless=_coerce_bool(raw.get("headless"), False),
            start_url=_coerce_text(raw.get("start_url")) or DEFAULT_START_URL,
            profile_dir=_coerce_text(raw.get("profile_dir")) or DEFAULT_PROFILE_DIR,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for name in RunConfiguration.__dataclass_fields__:
        if name == "watchlists":
            continue
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    raw_watchlists = environ.get(f"{ENV_PREFIX}WATCHLISTS")
    if raw_watchlists:
        try:
            overrides["watchlists"] = json.loads(raw_watchlists)
        except json.JSONDecodeError:
            # comma separated titles
            overrides["watchlists"] = [item for item in raw_watchlists.split(",")]
    return overrides


class ConfigStore:
    """JSON-file backed configuration provider with ``TVBATCH_*`` env overrides."""

    def __init__(self, path: Optional[Path] = None, *, use_env: bool = True):
        self.path = Path(path) if path else SETTINGS_PATH
        self.use_env = use_env
        if use_env:
            load_dotenv()

    def _read_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            if isinstance(data, dict):
                return data
        except Exception as exc:
            print(f"  • Failed to read {self.path}: {exc}")
        return {}

    def get(self) -> RunConfiguration:
        raw = self._read_file()
        if self.use_env:
            raw.update(_env_overrides())
        return RunConfiguration.from_mapping(raw)

    def ensure_file(self) -> bool:
        """Write plain defaults on first use; True when a new file was created.

        Environment overrides never reach the written file.
        """
        if self.path.exists():
            return False
        return self.set(RunConfiguration())

    def set(self, config: RunConfiguration) -> bool:
        try:
            payload = json.dumps(config.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(payload, encoding="utf-8")
            return True
        except Exception as exc:
            print(f"  • Failed to write {self.path}: {exc}")
            return False
