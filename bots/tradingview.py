"""Playwright adapter for a TradingView chart page.

All TradingView specific selectors live here. Class-name selectors carry the
hashed suffixes TradingView ships today and are expected to drift; each
capability falls back to role/text locators where that is possible and
reports ``None``/``False`` instead of raising when nothing matches.
"""

import re
from typing import Callable, Dict, List, Optional, Tuple

from playwright.sync_api import Locator, Page

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

ACTION_TIMEOUT_MS = 2000
WATCHLIST_WIDGET = '[data-test-id-widget-type="watchlist"]'
WATCHLIST_ROW = ".symbol-RsFlttSS"
REMOVE_BUTTON = ".removeButton-RsFlttSS, .removeButton-Tf8QRdrk"
SYMBOL_SEARCH_INPUT = "input[data-name='header-symbol-search'], input[placeholder*='Symbol']"
OUTDATED_SNACKBAR = '[data-qa-id="backtesting-updated-report-snackbar"]'
SNACKBAR_BUTTON = "button.snackbarButton-GBq6Mkel"
UPDATE_REPORT_TEXT = re.compile(r"更新报告|Update report", re.IGNORECASE)

FIELD_SELECTORS: Dict[str, str] = {
    FIELD_BACKTEST_FROM: "input[data-role='backtest-from'], input[placeholder*='From']",
    FIELD_BACKTEST_TO: "input[data-role='backtest-to'], input[placeholder*='To']",
}

# shared by every snippet that needs the watchlist scroll container
_LIST_CONTAINER_JS = """
const widget = document.querySelector('[data-test-id-widget-type="watchlist"]');
const container = widget
    ? (widget.querySelector('.listContainer-MgF6KBas')
        || widget.querySelector('[data-name="tree"]')
        || widget.querySelector('[data-name="symbol-list-wrap"]'))
    : null;
"""

_ROW_ATTRIBUTES_JS = """
const attributesOf = (el) => {
    const attrs = {};
    for (const name of ['data-symbol', 'data-symbol-id', 'data-symbol-short', 'data-symbol-full']) {
        const value = el.getAttribute(name);
        if (value) attrs[name] = value;
    }
    return attrs;
};
"""


def _css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _row_selector(identifier: str) -> str:
    escaped = _css_string(identifier)
    return (
        f'{WATCHLIST_WIDGET} {WATCHLIST_ROW}[data-symbol-short="{escaped}"], '
        f'{WATCHLIST_WIDGET} {WATCHLIST_ROW}[data-symbol-full$=":{escaped}"]'
    )


def _first_visible(locator: Locator, limit: int = 10) -> Optional[Locator]:
    try:
        total = min(locator.count(), limit)
    except Exception:
        return None
    for idx in range(total):
        candidate = locator.nth(idx)
        try:
            if candidate.is_visible():
                return candidate
        except Exception:
            continue
    return None


def _exact_text(label: str, case_sensitive: bool) -> re.Pattern:
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(rf"^\s*{re.escape(label.strip())}\s*$", flags)


def _make_control_locators(name: str) -> List[Tuple[str, Callable[[Page], Locator]]]:
    """Prioritized locator builders for a logical control."""
    options: Dict[str, List[Tuple[str, Callable[[Page], Locator]]]] = {
        CONTROL_TIMEFRAME: [
            ("timeframes toolbar button", lambda page: page.locator('[data-name="timeframes-toolbar"] button')),
            ("data-name=timeframe", lambda page: page.locator('[data-name="timeframe"]')),
        ],
        CONTROL_INDICATORS: [
            ("data-name=indicator-button", lambda page: page.locator('[data-name="indicator-button"]')),
            ("data-name=indicators", lambda page: page.locator('[data-name="indicators"]')),
            ("role=button[Indicators]", lambda page: page.get_by_role("button", name=re.compile(r"Indicators|指标"))),
        ],
        CONTROL_STRATEGY_TESTER: [
            ("data-name=backtesting", lambda page: page.locator('[data-name="backtesting"]')),
            ("text~=Strategy Tester", lambda page: page.get_by_text(re.compile(r"策略测试|Strategy Tester"))),
        ],
        CONTROL_REPORT_TAB: [
            ("text~=Strategy report", lambda page: page.get_by_text(re.compile(r"策略报告|策略测试|Strategy report"))),
        ],
        CONTROL_METRICS_TAB: [
            ("role=tab[Metrics]", lambda page: page.get_by_role("tab", name=re.compile(r"^(指标|Metrics|Performance)$"))),
            ("text=指标", lambda page: page.get_by_text(re.compile(r"^\s*(指标|Metrics)\s*$"))),
        ],
    }
    return options.get(name, [])


class TradingViewSurface(TargetSurface):
    def __init__(self, page: Page):
        self.page = page

    def _evaluate(self, script: str, arg=None):
        return self.page.evaluate(script, arg)

    def _click(self, locator: Optional[Locator], desc: str) -> bool:
        if locator is None:
            return False
        try:
            locator.click(timeout=ACTION_TIMEOUT_MS)
            return True
        except Exception as exc:
            print(f"    ⚠️ Click on {desc} failed: {exc}")
            return False

    # -- listing discovery --

    def collection_title(self) -> Optional[str]:
        return self._evaluate(
            """() => {
                const widget = document.querySelector('[data-test-id-widget-type="watchlist"]');
                if (!widget) return null;
                const title = widget.querySelector(
                    '[data-name="watchlists-button"] .titleRow-mQBvegEO, [data-name="watchlists-button"] span'
                );
                return (title?.innerText || '').trim();
            }"""
        )

    def collection_row_height(self) -> Optional[float]:
        return self._evaluate(
            "() => {" + _LIST_CONTAINER_JS + """
                const row = container?.querySelector('.symbol-RsFlttSS');
                return row ? row.getBoundingClientRect().height : null;
            }"""
        )

    def collection_scroll_height(self) -> float:
        return float(self._evaluate("() => {" + _LIST_CONTAINER_JS + " return container ? container.scrollHeight : 0; }") or 0)

    def scroll_collection_to(self, offset: float) -> None:
        self._evaluate("(offset) => {" + _LIST_CONTAINER_JS + " if (container) container.scrollTop = offset; }", offset)

    def rendered_collection_rows(self) -> List[RowInfo]:
        rows = self._evaluate(
            "() => {" + _LIST_CONTAINER_JS + _ROW_ATTRIBUTES_JS + """
                if (!container) return [];
                return Array.from(container.querySelectorAll(
                    '.symbol-RsFlttSS[data-symbol-short], .symbol-RsFlttSS[data-symbol-full]'
                )).map((el) => ({ attributes: attributesOf(el), text: (el.innerText || '').trim() }));
            }"""
        ) or []
        return [RowInfo(attributes=row.get("attributes") or {}, text=row.get("text") or "") for row in rows]

    def table_rows(self, limit: int) -> List[RowInfo]:
        rows = self._evaluate(
            "(limit) => {" + _ROW_ATTRIBUTES_JS + """
                const table = document.querySelector('table');
                if (!table) return [];
                return Array.from(table.querySelectorAll('tbody tr')).slice(0, limit).map((tr) => ({
                    attributes: attributesOf(tr),
                    text: (tr.innerText || '').trim(),
                    firstCell: (tr.querySelector('td')?.innerText || '').trim(),
                }));
            }""",
            limit,
        ) or []
        return [
            RowInfo(attributes=row.get("attributes") or {}, text=row.get("text") or "", first_cell=row.get("firstCell") or "")
            for row in rows
        ]

    # -- row lookup and selection --

    def _row_locator(self, handle: RowHandle) -> Locator:
        # handles hold a selector, never an element, so every use re-resolves the row
        return self.page.locator(handle.ref or _row_selector(handle.identifier)).first

    def find_row(self, identifier: str) -> Optional[RowHandle]:
        selector = _row_selector(identifier)
        if self.page.locator(selector).count() == 0:
            return None
        return RowHandle(identifier=identifier, ref=selector)

    def row_state(self, handle: RowHandle) -> Optional[RowState]:
        locator = self._row_locator(handle)
        if locator.count() == 0:
            return None
        data = locator.evaluate(
            """(row) => {
                const attrs = {};
                for (const name of ['aria-selected', 'aria-checked', 'data-active', 'data-selected', 'data-state']) {
                    const value = row.getAttribute(name);
                    if (value !== null) attrs[name] = value;
                }
                const ancestor = row.closest(
                    ".isActive, .active, .selected, .current, [data-active='true'], [data-selected='true'], [aria-selected='true']"
                );
                return { attributes: attrs, className: String(row.className || ''), ancestor: !!ancestor };
            }"""
        )
        return RowState(
            attributes=data.get("attributes") or {},
            class_name=data.get("className") or "",
            ancestor_selected=bool(data.get("ancestor")),
        )

    def scroll_row_into_view(self, handle: RowHandle) -> None:
        self._row_locator(handle).evaluate("(row) => row.scrollIntoView({ block: 'center' })")

    def click_row(self, handle: RowHandle) -> bool:
        locator = self._row_locator(handle)
        if locator.count() == 0:
            return False
        try:
            locator.locator(".symbolNameText-RsFlttSS").first.click(timeout=ACTION_TIMEOUT_MS)
            return True
        except Exception:
            pass
        # synthetic pointer sequence for rows that swallow trusted clicks
        return bool(
            locator.evaluate(
                """(row) => {
                    const target = row.closest('.wrap-IEe5qpW4') || row;
                    target.scrollIntoView({ block: 'center' });
                    const rect = target.getBoundingClientRect();
                    const clientX = rect.left + rect.width / 2;
                    const clientY = rect.top + rect.height / 2;
                    const common = { bubbles: true, composed: true, clientX, clientY, screenX: clientX,
                                     screenY: clientY, view: window, button: 0, buttons: 1, detail: 1 };
                    const pointer = { ...common, pointerId: 1, pointerType: 'mouse', isPrimary: true, pressure: 0.5 };
                    target.dispatchEvent(new PointerEvent('pointerdown', pointer));
                    target.dispatchEvent(new MouseEvent('mousedown', common));
                    target.dispatchEvent(new PointerEvent('pointerup', { ...pointer, buttons: 0, pressure: 0 }));
                    target.dispatchEvent(new MouseEvent('mouseup', common));
                    target.dispatchEvent(new MouseEvent('click', { ...common, buttons: 0 }));
                    return true;
                }"""
            )
        )

    def focus_collection(self) -> bool:
        return bool(self._evaluate("() => {" + _LIST_CONTAINER_JS + " if (!container) return false; container.focus(); return true; }"))

    def press_collection_key(self, key: str) -> bool:
        if not self.focus_collection():
            return False
        self.page.keyboard.press(key)
        return True

    def delete_row(self, handle: RowHandle) -> bool:
        row = self._row_locator(handle)
        if row.count() == 0:
            return False
        button = row.locator(REMOVE_BUTTON).first
        if button.count() == 0:
            return False
        try:
            row.hover(timeout=ACTION_TIMEOUT_MS)
        except Exception:
            pass
        button.click(timeout=ACTION_TIMEOUT_MS, force=True)
        return True

    def switch_symbol(self, identifier: str) -> bool:
        field = _first_visible(self.page.locator(SYMBOL_SEARCH_INPUT))
        if field is None:
            return False
        field.fill("", timeout=ACTION_TIMEOUT_MS)
        field.fill(identifier, timeout=ACTION_TIMEOUT_MS)
        field.press("Enter", timeout=ACTION_TIMEOUT_MS)
        return True

    def click_table_row(self, ordinal: int) -> bool:
        rows = self.page.locator("table tbody tr")
        if rows.count() <= ordinal:
            return False
        return self._click(rows.nth(ordinal), f"table row {ordinal}")

    # -- workflow configuration --

    def open_control(self, name: str) -> bool:
        for desc, builder in _make_control_locators(name):
            target = _first_visible(builder(self.page))
            if target is not None and self._click(target, desc):
                return True
        return False

    def choose_entry(self, label: str, *, case_sensitive: bool = True) -> bool:
        pattern = _exact_text(label, case_sensitive)
        scopes = ["[role='menu']", "[role='listbox']", "[role='dialog']", "body"]
        for scope in scopes:
            target = _first_visible(self.page.locator(scope).get_by_text(pattern))
            if target is not None and self._click(target, f"{scope} text='{label}'"):
                return True
        return False

    def set_field(self, name: str, value: str) -> bool:
        selector = FIELD_SELECTORS.get(name)
        if not selector:
            return False
        field = _first_visible(self.page.locator(selector))
        if field is None:
            return False
        field.evaluate(
            """(input, value) => {
                const setter = Object.getOwnPropertyDescriptor(HTMLInputElement.prototype, 'value').set;
                input.focus();
                setter.call(input, '');
                input.dispatchEvent(new Event('input', { bubbles: true }));
                setter.call(input, value);
                input.dispatchEvent(new Event('input', { bubbles: true }));
                input.dispatchEvent(new Event('change', { bubbles: true }));
            }""",
            value,
        )
        return True

    def click_button_matching(self, pattern: str) -> bool:
        target = _first_visible(self.page.get_by_role("button", name=re.compile(pattern, re.IGNORECASE)))
        return self._click(target, f"button~/{pattern}/")

    # -- refresh signal --

    def outdated_report_visible(self) -> bool:
        if self.page.locator(OUTDATED_SNACKBAR).count() > 0:
            return True
        return _first_visible(self.page.get_by_text(UPDATE_REPORT_TEXT)) is not None

    def confirm_report_update(self) -> bool:
        button = _first_visible(self.page.locator(f"{OUTDATED_SNACKBAR} {SNACKBAR_BUTTON}"))
        if button is None:
            button = _first_visible(self.page.get_by_text(UPDATE_REPORT_TEXT))
        return self._click(button, "update report")

    # -- metric text --

    def metric_card(self, label: str) -> Optional[Tuple[str, str]]:
        found = self._evaluate(
            """(label) => {
                const normalize = (text) => (text || '')
                    .replace(/[\\u200e\\u200f\\u202a-\\u202e\\u2066-\\u2069]/g, '')
                    .replace(/\\s+/g, ' ')
                    .trim();
                const title = Array.from(document.querySelectorAll('.title-nEWm7_ye'))
                    .find((el) => normalize(el.innerText) === label);
                const cell = title?.closest('.containerCell-zres18Ue');
                if (!cell) return null;
                const value = cell.querySelector('.highlightedValue-DiHajR6I, .value-DiHajR6I');
                const percent = cell.querySelector('.change-DiHajR6I');
                return [value?.innerText || '', percent?.innerText || ''];
            }""",
            label,
        )
        if not found:
            return None
        return found[0], found[1]

    def table_metric_cells(self, label: str, scoped: bool = True) -> Optional[List[str]]:
        return self._evaluate(
            """([label, scoped]) => {
                const normalize = (text) => (text || '')
                    .replace(/[\\u200e\\u200f\\u202a-\\u202e\\u2066-\\u2069]/g, '')
                    .replace(/\\s+/g, ' ')
                    .trim();
                const root = scoped ? document.querySelector('[data-qa-id="ratios-table"]') : document;
                if (!root) return null;
                const title = Array.from(root.querySelectorAll('.title-fArEbVva'))
                    .find((el) => normalize(el.innerText).includes(label));
                let row = title?.closest('tr');
                if (!row) {
                    row = Array.from(root.querySelectorAll('tr'))
                        .find((tr) => normalize(tr.innerText).includes(label));
                }
                if (!row) return null;
                return Array.from(row.querySelectorAll('.value-SLMKagwH')).map((el) => el.innerText || '');
            }""",
            [label, scoped],
        )

    def strategy_title(self) -> str:
        return self._evaluate(
            """() => {
                const titled = document.querySelector('[data-strategy-title]');
                const title = titled?.getAttribute('data-strategy-title') || '';
                if (title.trim()) return title;
                const fallback = document.querySelector(
                    ".strategyGroup-rQLA_iPz [role='button'], [data-name='strategy-group'] [role='button']"
                );
                return fallback?.innerText || '';
            }"""
        ) or ""
