import math
from dataclasses import dataclass
from typing import Optional

from metrics import MetricRecord, parse_number, parse_percent
from selection import SelectionController
from settings import DEFAULT_MIN_PNL_PERCENT, DEFAULT_MIN_SHARPE_RATIO, RunConfiguration, coerce_float
from surface import RowHandle, probe


@dataclass(frozen=True)
class Thresholds:
    min_pnl_percent: float = DEFAULT_MIN_PNL_PERCENT
    min_sharpe_ratio: float = DEFAULT_MIN_SHARPE_RATIO

    @classmethod
    def build(cls, min_pnl_percent=None, min_sharpe_ratio=None) -> "Thresholds":
        return cls(
            min_pnl_percent=coerce_float(min_pnl_percent, DEFAULT_MIN_PNL_PERCENT),
            min_sharpe_ratio=coerce_float(min_sharpe_ratio, DEFAULT_MIN_SHARPE_RATIO),
        )

    @classmethod
    def from_config(cls, config: RunConfiguration) -> "Thresholds":
        return cls.build(config.min_pnl_percent, config.min_sharpe_ratio)


@dataclass(frozen=True)
class Verdict:
    keep: bool
    drop: bool
    pnl_percent: float
    sharpe_ratio: float

    @property
    def decision(self) -> str:
        if self.keep:
            return "keep"
        if self.drop:
            return "drop"
        return "undecided"


def judge(pnl_percent: float, sharpe_ratio: float, thresholds: Thresholds) -> Verdict:
    """Apply thresholds to already parsed values.

    A symbol can be neither kept nor dropped: one unparseable metric blocks
    keeping, and only a parsed value below its threshold triggers dropping.
    """
    pnl_valid = not math.isnan(pnl_percent)
    sharpe_valid = not math.isnan(sharpe_ratio)
    drop = (pnl_valid and pnl_percent < thresholds.min_pnl_percent) or (
        sharpe_valid and sharpe_ratio < thresholds.min_sharpe_ratio
    )
    keep = (
        pnl_valid
        and sharpe_valid
        and pnl_percent >= thresholds.min_pnl_percent
        and sharpe_ratio >= thresholds.min_sharpe_ratio
    )
    return Verdict(keep=keep, drop=drop, pnl_percent=pnl_percent, sharpe_ratio=sharpe_ratio)


def classify(record: MetricRecord, thresholds: Optional[Thresholds] = None) -> Verdict:
    return judge(parse_percent(record.total_pnl), parse_number(record.sharpe_ratio), thresholds or Thresholds())


def delete_symbol(
    selector: SelectionController,
    identifier: str,
    handle: Optional[RowHandle],
    ordinal: Optional[int] = None,
) -> bool:
    """Remove a failing symbol from the watchlist; a missing remove button is only reported."""
    if handle is None:
        print(f"  ⚠️ {identifier} below threshold, no watchlist row to delete")
        return False
    # the row may have re-rendered while the report was recomputing
    handle = selector.find_row(identifier) or handle
    selector.ensure_selected(identifier, handle, ordinal)
    deleted = bool(probe("delete row", selector.surface.delete_row, handle, default=False))
    if deleted:
        print(f"  🗑️ {identifier} below threshold, removed from watchlist")
    else:
        print(f"  ⚠️ {identifier} below threshold, but no remove button was found")
    return deleted
