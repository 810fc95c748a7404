import math
import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from surface import TargetSurface, probe

BIDI_CONTROLS = re.compile(r"[\u200e\u200f\u202a-\u202e\u2066-\u2069]")
WHITESPACE = re.compile(r"\s+")
MINUS_VARIANTS = re.compile(r"[\u2212\u2013\u2014\uff0d]")
PERCENT_PATTERN = re.compile(r"[+-]?\d[\d,]*(?:\.\d+)?")
NUMBER_PATTERN = re.compile(r"[+-]?\d+(?:\.\d+)?")

# report labels as rendered by the English and Chinese UI
TOTAL_PNL_LABELS = ("Total P&L", "Net Profit", "总盈亏")
MAX_DRAWDOWN_LABELS = ("Max equity drawdown", "Max Drawdown", "最大股权回撤")
TOTAL_TRADES_LABELS = ("Total trades", "Total Closed Trades", "总交易")
PROFITABLE_TRADES_LABELS = ("Profitable trades", "Percent Profitable", "盈利交易")
PROFIT_FACTOR_LABELS = ("Profit factor", "Profit Factor", "盈利因子")
SHARPE_RATIO_LABELS = ("Sharpe ratio", "Sharpe Ratio", "夏普比率")


@dataclass
class MetricRecord:
    """Raw report text for one symbol. Numbers are only derived for classification."""

    identifier: str
    group_label: str = ""
    strategy_name: str = ""
    total_pnl: str = ""
    max_drawdown: str = ""
    total_trades: str = ""
    win_rate: str = ""
    profit_factor: str = ""
    sharpe_ratio: str = ""

    @classmethod
    def empty(cls, identifier: str, group_label: str = "") -> "MetricRecord":
        return cls(identifier=identifier, group_label=group_label)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def normalize_text(text: Optional[str]) -> str:
    return WHITESPACE.sub(" ", BIDI_CONTROLS.sub("", text or "")).strip()


def _normalize_signs(value: str) -> str:
    return MINUS_VARIANTS.sub("-", value).replace("\uff0b", "+").replace("\uff05", "%")


def parse_percent(value: Optional[str]) -> float:
    """First signed decimal in a percent-like string; NaN when there is none."""
    if not value:
        return math.nan
    match = PERCENT_PATTERN.search(_normalize_signs(str(value)))
    if not match:
        return math.nan
    return float(match.group(0).replace(",", ""))


def parse_number(value: Optional[str]) -> float:
    """Like ``parse_percent`` but a lone comma is read as the decimal separator."""
    if not value:
        return math.nan
    normalized = WHITESPACE.sub("", _normalize_signs(str(value)))
    if "," in normalized and "." not in normalized:
        normalized = normalized.replace(",", ".")
    else:
        normalized = normalized.replace(",", "")
    match = NUMBER_PATTERN.search(normalized)
    if not match:
        return math.nan
    return float(match.group(0))


class MetricReader:
    def __init__(self, surface: TargetSurface):
        self.surface = surface

    def card(self, labels: Sequence[str]) -> Tuple[str, str]:
        for label in labels:
            found = probe(f"metric card '{label}'", self.surface.metric_card, label)
            if not found:
                continue
            value, percent = (normalize_text(text) for text in found)
            if value or percent:
                return value, percent
        return "", ""

    def table_value(self, labels: Sequence[str]) -> str:
        # ratios table first, then anywhere on the page
        for scoped in (True, False):
            for label in labels:
                cells: List[str] = probe(
                    f"table metric '{label}'", self.surface.table_metric_cells, label, scoped, default=None
                ) or []
                texts = [normalize_text(cell) for cell in cells]
                value = next((text for text in texts if text), "")
                if value:
                    return value
        return ""

    def read_metrics(self, identifier: str, group_label: str = "") -> MetricRecord:
        record = MetricRecord.empty(identifier, group_label)
        record.strategy_name = normalize_text(probe("strategy title", self.surface.strategy_title, default=""))

        pnl_value, pnl_percent = self.card(TOTAL_PNL_LABELS)
        record.total_pnl = pnl_percent or pnl_value
        drawdown_value, drawdown_percent = self.card(MAX_DRAWDOWN_LABELS)
        record.max_drawdown = drawdown_percent or drawdown_value
        record.total_trades = self.card(TOTAL_TRADES_LABELS)[0]
        win_value, win_percent = self.card(PROFITABLE_TRADES_LABELS)
        record.win_rate = win_value or win_percent
        record.profit_factor = self.card(PROFIT_FACTOR_LABELS)[0]
        record.sharpe_ratio = self.table_value(SHARPE_RATIO_LABELS)
        return record
