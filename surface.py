"""Capabilities the batch core needs from the page it drives.

Everything site specific (selectors, class names, event sequences) lives behind
``TargetSurface``. The core only ever talks to this interface, and treats every
capability as possibly missing: adapters return ``None``/``False``/empty values
when an affordance is absent, and ``probe`` turns unexpected adapter errors into
the same degraded values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

T = TypeVar("T")

# logical control names understood by ``open_control``
CONTROL_TIMEFRAME = "timeframe"
CONTROL_INDICATORS = "indicators"
CONTROL_STRATEGY_TESTER = "strategy_tester"
CONTROL_REPORT_TAB = "report_tab"
CONTROL_METRICS_TAB = "metrics_tab"

# logical field names understood by ``set_field``
FIELD_BACKTEST_FROM = "backtest_from"
FIELD_BACKTEST_TO = "backtest_to"


@dataclass(frozen=True)
class NamedCollection:
    name: str
    group_label: str = ""


@dataclass(frozen=True)
class TabularFallback:
    pass


ListingSource = Union[NamedCollection, TabularFallback]


@dataclass
class RowHandle:
    """Ephemeral pointer at a rendered row. ``ref`` belongs to the adapter."""

    identifier: str
    ref: Any = None


@dataclass
class RowInfo:
    attributes: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    first_cell: str = ""


@dataclass
class RowState:
    attributes: Dict[str, str] = field(default_factory=dict)
    class_name: str = ""
    ancestor_selected: bool = False


class TargetSurface(ABC):
    # -- listing discovery --
    @abstractmethod
    def collection_title(self) -> Optional[str]:
        """Header title of the watchlist widget, ``None`` when no widget is shown."""

    @abstractmethod
    def collection_row_height(self) -> Optional[float]: ...

    @abstractmethod
    def collection_scroll_height(self) -> float: ...

    @abstractmethod
    def scroll_collection_to(self, offset: float) -> None: ...

    @abstractmethod
    def rendered_collection_rows(self) -> List[RowInfo]:
        """Rows the virtualized watchlist currently has in the DOM."""

    @abstractmethod
    def table_rows(self, limit: int) -> List[RowInfo]: ...

    # -- row lookup and selection --
    @abstractmethod
    def find_row(self, identifier: str) -> Optional[RowHandle]: ...

    @abstractmethod
    def row_state(self, handle: RowHandle) -> Optional[RowState]: ...

    @abstractmethod
    def scroll_row_into_view(self, handle: RowHandle) -> None: ...

    @abstractmethod
    def click_row(self, handle: RowHandle) -> bool: ...

    @abstractmethod
    def focus_collection(self) -> bool: ...

    @abstractmethod
    def press_collection_key(self, key: str) -> bool: ...

    @abstractmethod
    def delete_row(self, handle: RowHandle) -> bool:
        """Click the row's remove button. False when the button is missing."""

    @abstractmethod
    def switch_symbol(self, identifier: str) -> bool:
        """Type ``identifier`` into the header symbol search."""

    @abstractmethod
    def click_table_row(self, ordinal: int) -> bool: ...

    # -- workflow configuration --
    @abstractmethod
    def open_control(self, name: str) -> bool: ...

    @abstractmethod
    def choose_entry(self, label: str, *, case_sensitive: bool = True) -> bool: ...

    @abstractmethod
    def set_field(self, name: str, value: str) -> bool: ...

    @abstractmethod
    def click_button_matching(self, pattern: str) -> bool: ...

    # -- refresh signal --
    @abstractmethod
    def outdated_report_visible(self) -> bool: ...

    @abstractmethod
    def confirm_report_update(self) -> bool: ...

    # -- metric text --
    @abstractmethod
    def metric_card(self, label: str) -> Optional[Tuple[str, str]]:
        """Raw ``(value, percent)`` text of the summary card titled ``label``."""

    @abstractmethod
    def table_metric_cells(self, label: str, scoped: bool = True) -> Optional[List[str]]:
        """Value cell texts of the table row labelled ``label``."""

    @abstractmethod
    def strategy_title(self) -> str: ...


def probe(label: str, fn: Callable[..., T], *args, default: Optional[T] = None, **kwargs) -> Optional[T]:
    """Call a surface capability, degrading any adapter error to ``default``."""
    try:
        return fn(*args, **kwargs)
    except Exception as exc:
        print(f"  • {label} failed: {exc}")
        return default
