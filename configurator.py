from dataclasses import dataclass, field
from typing import List

from errors import ConfigurationPartial
from pacing import Pacer
from settings import RunConfiguration
from surface import (
    CONTROL_INDICATORS,
    CONTROL_METRICS_TAB,
    CONTROL_REPORT_TAB,
    CONTROL_STRATEGY_TESTER,
    CONTROL_TIMEFRAME,
    FIELD_BACKTEST_FROM,
    FIELD_BACKTEST_TO,
    TargetSurface,
    probe,
)

MENU_SETTLE_MS = 200
PANEL_SETTLE_MS = 300
TAB_SETTLE_MS = 200
CONFIRM_BUTTON_PATTERN = r"应用|确定|Apply"


@dataclass
class ConfigurationReport:
    applied: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.missing)

    def note(self, ok: bool, what: str) -> bool:
        (self.applied if ok else self.missing).append(what)
        return ok

    def as_errors(self) -> List[ConfigurationPartial]:
        return [ConfigurationPartial(f"missing affordance: {what}") for what in self.missing]


class WorkflowConfigurator:
    """Best-effort application of timeframe, strategy and backtest range to the active chart."""

    def __init__(self, surface: TargetSurface, pacer: Pacer):
        self.surface = surface
        self.pacer = pacer

    def _open(self, control: str, settle_ms: int) -> bool:
        opened = bool(probe(f"open {control}", self.surface.open_control, control, default=False))
        if opened:
            self.pacer.sleep(settle_ms, f"{control} settle")
        return opened

    def apply_timeframe(self, timeframe: str, report: ConfigurationReport) -> None:
        if not report.note(self._open(CONTROL_TIMEFRAME, MENU_SETTLE_MS), "timeframe menu"):
            return
        chosen = probe("choose timeframe", self.surface.choose_entry, timeframe, case_sensitive=True, default=False)
        if report.note(bool(chosen), f"timeframe '{timeframe}'"):
            self.pacer.sleep(MENU_SETTLE_MS, "timeframe settle")

    def apply_strategy(self, strategy_name: str, report: ConfigurationReport) -> None:
        # the strategy may already be listed without opening the panel
        report.note(self._open(CONTROL_INDICATORS, PANEL_SETTLE_MS), "indicators panel")
        chosen = probe("choose strategy", self.surface.choose_entry, strategy_name, case_sensitive=False, default=False)
        if report.note(bool(chosen), f"strategy '{strategy_name}'"):
            self.pacer.sleep(PANEL_SETTLE_MS, "strategy settle")
        else:
            print(f"  ⚠️ Strategy not found on the page: {strategy_name}")

    def apply_backtest_range(self, config: RunConfiguration, report: ConfigurationReport) -> None:
        report.note(self._open(CONTROL_STRATEGY_TESTER, PANEL_SETTLE_MS), "strategy tester")
        for field_name, value in ((FIELD_BACKTEST_FROM, config.backtest_from), (FIELD_BACKTEST_TO, config.backtest_to)):
            if not value:
                continue
            written = probe(f"set {field_name}", self.surface.set_field, field_name, value, default=False)
            report.note(bool(written), f"{field_name} field")
        if probe("confirm range", self.surface.click_button_matching, CONFIRM_BUTTON_PATTERN, default=False):
            self.pacer.sleep(PANEL_SETTLE_MS, "range confirm settle")

    def apply_configuration(self, config: RunConfiguration) -> ConfigurationReport:
        report = ConfigurationReport()
        if config.timeframe:
            self.apply_timeframe(config.timeframe, report)
        if config.strategy_name:
            self.apply_strategy(config.strategy_name, report)
        if config.backtest_from or config.backtest_to:
            self.apply_backtest_range(config, report)
        if report.partial:
            print(f"  ⚠️ Configuration partially applied; missing: {', '.join(report.missing)}")
        return report

    def open_report(self) -> bool:
        """Bring the Strategy Tester report and its metrics tab to the front."""
        report_open = self._open(CONTROL_REPORT_TAB, TAB_SETTLE_MS)
        metrics_open = self._open(CONTROL_METRICS_TAB, TAB_SETTLE_MS)
        return report_open or metrics_open
