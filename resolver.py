from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from pacing import Pacer
from settings import RunConfiguration
from surface import ListingSource, NamedCollection, RowInfo, TabularFallback, TargetSurface, probe

DEFAULT_ROW_HEIGHT = 30.0
ROWS_PER_STEP = 10
MIN_SCROLL_STEP = 150.0
SCROLL_SETTLE_MS = 120
MAX_IDLE_ROUNDS = 3

SYMBOL_ATTRIBUTES = ("data-symbol", "data-symbol-id", "data-symbol-short", "data-symbol-full")


@dataclass
class ResolvedItems:
    source: Optional[ListingSource] = None
    identifiers: List[str] = field(default_factory=list)

    @property
    def group_label(self) -> str:
        if isinstance(self.source, NamedCollection):
            return self.source.group_label
        return ""

    def __len__(self) -> int:
        return len(self.identifiers)


def strip_exchange_prefix(value: str) -> str:
    trimmed = (value or "").strip()
    if ":" in trimmed:
        return trimmed.split(":")[-1].strip()
    return trimmed


def extract_identifier(row: RowInfo) -> Optional[str]:
    """Symbol for a rendered row: data attributes first, visible text second."""
    for name in SYMBOL_ATTRIBUTES:
        raw = (row.attributes or {}).get(name)
        if raw and raw.strip():
            return strip_exchange_prefix(raw) or None
    first_cell = (row.first_cell or "").strip()
    if first_cell:
        return first_cell
    tokens = (row.text or "").split()
    return tokens[0] if tokens else None


def scroll_step(surface: TargetSurface) -> float:
    row_height = probe("row height", surface.collection_row_height)
    if not row_height or row_height <= 0:
        row_height = DEFAULT_ROW_HEIGHT
    return max(row_height * ROWS_PER_STEP, MIN_SCROLL_STEP)


def collection_usable(surface: TargetSurface, source: NamedCollection) -> bool:
    title = probe("watchlist title", surface.collection_title)
    return bool(title) and title.strip() == source.name.strip()


def _add_unique(seen: List[str], rows: Iterable[RowInfo], limit: int) -> bool:
    """Append new identifiers in render order; True once ``limit`` is reached."""
    for row in rows:
        identifier = extract_identifier(row)
        if identifier and identifier not in seen:
            seen.append(identifier)
            if len(seen) >= limit:
                return True
    return len(seen) >= limit


def collect_collection_symbols(surface: TargetSurface, max_symbols: int, pacer: Pacer) -> List[str]:
    """Walk a virtualized watchlist top to bottom, sampling rows after each scroll step."""
    step = scroll_step(surface)
    seen: List[str] = []
    idle_rounds = 0
    last_size = 0
    offset = 0.0
    while offset <= (probe("scroll height", surface.collection_scroll_height, default=0.0) or 0.0):
        probe("scroll watchlist", surface.scroll_collection_to, offset)
        pacer.sleep(SCROLL_SETTLE_MS, "watchlist scroll")
        rows = probe("read watchlist rows", surface.rendered_collection_rows, default=[]) or []
        if _add_unique(seen, rows, max_symbols):
            break
        offset += step
        if not seen:
            continue
        if len(seen) == last_size:
            idle_rounds += 1
        else:
            idle_rounds = 0
        last_size = len(seen)
        if idle_rounds >= MAX_IDLE_ROUNDS:
            print(f"  • Watchlist stopped growing at {len(seen)} symbols; ending scan.")
            break
    return seen[:max_symbols]


def collect_table_symbols(surface: TargetSurface, max_symbols: int) -> List[str]:
    rows = probe("read screener table", surface.table_rows, max_symbols, default=[]) or []
    seen: List[str] = []
    for row in rows[:max_symbols]:
        identifier = extract_identifier(row)
        if identifier and identifier not in seen:
            seen.append(identifier)
    return seen


def resolve_items(
    surface: TargetSurface,
    config: RunConfiguration,
    pacer: Pacer,
    sources: Optional[List[ListingSource]] = None,
) -> ResolvedItems:
    """Discover up to ``max_symbols`` unique symbols from the first listing source that yields any."""
    if sources is None:
        sources = [NamedCollection(name, group) for name, group in config.watchlists.items()]
        sources.append(TabularFallback())
    limit = max(config.max_symbols, 0)

    for source in sources:
        if isinstance(source, NamedCollection):
            if not collection_usable(surface, source):
                continue
            print(f"🔹 Scanning watchlist '{source.name}' for up to {limit} symbols…")
            identifiers = collect_collection_symbols(surface, limit, pacer)
        else:
            print(f"🔹 Falling back to the screener table for up to {limit} symbols…")
            identifiers = collect_table_symbols(surface, limit)
        if identifiers:
            print(f"✅ Resolved {len(identifiers)} symbols from {_describe(source)}")
            return ResolvedItems(source=source, identifiers=identifiers)

    return ResolvedItems()


def _describe(source: ListingSource) -> str:
    if isinstance(source, NamedCollection):
        return f"watchlist '{source.name}'"
    return "screener table"
