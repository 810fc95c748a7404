"""In-memory stand-ins for the TradingView page and the wall clock."""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from pacing import CancelToken, Pacer
from surface import (
    CONTROL_INDICATORS,
    CONTROL_METRICS_TAB,
    CONTROL_REPORT_TAB,
    CONTROL_STRATEGY_TESTER,
    CONTROL_TIMEFRAME,
    FIELD_BACKTEST_FROM,
    FIELD_BACKTEST_TO,
    RowHandle,
    RowInfo,
    RowState,
    TargetSurface,
)

ALL_CONTROLS = {
    CONTROL_TIMEFRAME,
    CONTROL_INDICATORS,
    CONTROL_STRATEGY_TESTER,
    CONTROL_REPORT_TAB,
    CONTROL_METRICS_TAB,
}


class VirtualPacer(Pacer):
    """Pacer on a simulated clock; sleeps return immediately and are recorded."""

    def __init__(self, token: Optional[CancelToken] = None):
        super().__init__(token)
        self.clock_ms = 0.0
        self.sleeps: List[Tuple[str, float]] = []

    def now_ms(self) -> float:
        return self.clock_ms

    def sleep(self, ms: float, label: str = "") -> None:
        self.check(label)
        self.sleeps.append((label, ms))
        self.clock_ms += max(ms, 0)
        self.check(label)

    def count(self, label: str) -> int:
        return sum(1 for name, _ in self.sleeps if name == label)


def report(pnl: str = "+20.00%", sharpe: str = "1.50", **cards: Tuple[str, str]) -> Dict:
    """Strategy report contents for one symbol."""
    base_cards = {
        "Total P&L": ("+2,000.00 USD", pnl),
        "Max equity drawdown": ("350.00 USD", "3.50%"),
        "Total trades": ("42", ""),
        "Profitable trades": ("57.14%", "24/42"),
        "Profit factor": ("1.873", ""),
    }
    base_cards.update(cards)
    return {"cards": base_cards, "ratios": {"Sharpe ratio": ["", sharpe]}}


class FakeSurface(TargetSurface):
    def __init__(
        self,
        symbols: Sequence[str] = (),
        title: Optional[str] = "美股可交易",
        row_height: float = 30.0,
        viewport_rows: int = 15,
        table: Optional[List[RowInfo]] = None,
        reports: Optional[Dict[str, Dict]] = None,
    ):
        self.symbols = list(symbols)
        self.title = title
        self.row_height = row_height
        self.viewport_rows = viewport_rows
        self.table = table
        self.reports = reports or {}
        self.scroll_top = 0.0
        self.active: Optional[str] = None
        self.focused: Optional[str] = None
        self.stuck_render = False
        self.missing_rows: set = set()
        self.ignored_clicks: Dict[str, int] = {}
        self.key_selects = True
        self.no_remove_button: set = set()
        self.symbol_search = True
        self.controls = set(ALL_CONTROLS)
        self.entries = {"1D", "4h", "My Strategy"}
        self.fields_present = {FIELD_BACKTEST_FROM, FIELD_BACKTEST_TO}
        self.fields: Dict[str, str] = {}
        self.confirm_button = True
        self.outdated_after_polls: Optional[int] = 1
        self.polls = 0
        self.updates = 0
        self.clicks: List[str] = []
        self.deleted: List[str] = []
        self.opened: List[str] = []
        self.chosen: List[str] = []
        self.scrolls: List[float] = []

    @staticmethod
    def short(symbol: str) -> str:
        return symbol.split(":")[-1]

    def _rendered(self) -> List[str]:
        start = 0 if self.stuck_render else int(self.scroll_top // self.row_height)
        return self.symbols[start:start + self.viewport_rows]

    # -- listing discovery --

    def collection_title(self) -> Optional[str]:
        return self.title

    def collection_row_height(self) -> Optional[float]:
        return self.row_height

    def collection_scroll_height(self) -> float:
        return len(self.symbols) * self.row_height

    def scroll_collection_to(self, offset: float) -> None:
        self.scrolls.append(offset)
        self.scroll_top = offset

    def rendered_collection_rows(self) -> List[RowInfo]:
        return [
            RowInfo(attributes={"data-symbol-full": symbol, "data-symbol-short": self.short(symbol)}, text=self.short(symbol))
            for symbol in self._rendered()
        ]

    def table_rows(self, limit: int) -> List[RowInfo]:
        return list(self.table or [])[:limit]

    # -- row lookup and selection --

    def find_row(self, identifier: str) -> Optional[RowHandle]:
        if identifier in self.missing_rows:
            return None
        if identifier in [self.short(symbol) for symbol in self._rendered()]:
            return RowHandle(identifier=identifier, ref=identifier)
        return None

    def row_state(self, handle: RowHandle) -> Optional[RowState]:
        selected = "true" if self.active == handle.identifier else "false"
        return RowState(attributes={"aria-selected": selected}, class_name="symbol-RsFlttSS")

    def scroll_row_into_view(self, handle: RowHandle) -> None:
        pass

    def click_row(self, handle: RowHandle) -> bool:
        self.clicks.append(handle.identifier)
        self.focused = handle.identifier
        remaining = self.ignored_clicks.get(handle.identifier, 0)
        if remaining > 0:
            self.ignored_clicks[handle.identifier] = remaining - 1
            return True
        self.active = handle.identifier
        return True

    def focus_collection(self) -> bool:
        return True

    def press_collection_key(self, key: str) -> bool:
        if key == "Enter" and self.key_selects and self.focused:
            self.active = self.focused
        return True

    def delete_row(self, handle: RowHandle) -> bool:
        if handle.identifier in self.no_remove_button:
            return False
        self.deleted.append(handle.identifier)
        self.symbols = [symbol for symbol in self.symbols if self.short(symbol) != handle.identifier]
        return True

    def switch_symbol(self, identifier: str) -> bool:
        if not self.symbol_search:
            return False
        self.active = identifier
        return True

    def click_table_row(self, ordinal: int) -> bool:
        rows = self.table or []
        if ordinal >= len(rows):
            return False
        self.active = rows[ordinal].first_cell
        return True

    # -- workflow configuration --

    def open_control(self, name: str) -> bool:
        if name not in self.controls:
            return False
        self.opened.append(name)
        return True

    def choose_entry(self, label: str, *, case_sensitive: bool = True) -> bool:
        for entry in self.entries:
            if entry == label or (not case_sensitive and entry.lower() == label.lower()):
                self.chosen.append(entry)
                return True
        return False

    def set_field(self, name: str, value: str) -> bool:
        if name not in self.fields_present:
            return False
        self.fields[name] = value
        return True

    def click_button_matching(self, pattern: str) -> bool:
        return self.confirm_button

    # -- refresh signal --

    def outdated_report_visible(self) -> bool:
        self.polls += 1
        return self.outdated_after_polls is not None and self.polls >= self.outdated_after_polls

    def confirm_report_update(self) -> bool:
        self.updates += 1
        self.polls = 0
        return True

    # -- metric text --

    def _report(self) -> Dict:
        return self.reports.get(self.active or "", {})

    def metric_card(self, label: str) -> Optional[Tuple[str, str]]:
        return self._report().get("cards", {}).get(label)

    def table_metric_cells(self, label: str, scoped: bool = True) -> Optional[List[str]]:
        if not scoped:
            return self._report().get("loose", {}).get(label)
        return self._report().get("ratios", {}).get(label)

    def strategy_title(self) -> str:
        return "My Strategy" if self._report() else ""


def is_nan(value: float) -> bool:
    return isinstance(value, float) and math.isnan(value)
