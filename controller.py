"""Sequential batch over the symbols of a watchlist or screener table.

One ``BatchController`` drives one page. Symbols are processed strictly in
discovery order; anything that goes wrong for a single symbol degrades into an
empty record plus a diagnostic note, and the batch moves on.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from classifier import Thresholds, classify, delete_symbol
from configurator import WorkflowConfigurator
from diagnostics import ItemDiagnostic, RunLedger
from errors import DeliveryFailed, RefreshTimeout, RunCancelled, SelectionFailed, SourceNotFound
from exporter import ExportReceipt, export_results
from metrics import MetricReader, MetricRecord
from pacing import Pacer
from refresh import RefreshSynchronizer
from resolver import ResolvedItems, resolve_items
from selection import SelectionController
from settings import RunConfiguration
from surface import NamedCollection, RowHandle, TargetSurface, probe

POST_REFRESH_SETTLE_MS = 1500


@dataclass
class BatchOutcome:
    items: ResolvedItems = field(default_factory=ResolvedItems)
    results: List[MetricRecord] = field(default_factory=list)
    diagnostics: List[ItemDiagnostic] = field(default_factory=list)
    receipt: Optional[ExportReceipt] = None
    aborted: Optional[str] = None
    summary: str = ""

    @property
    def dropped(self) -> int:
        return sum(1 for item in self.diagnostics if item.decision == "drop")


class BatchController:
    def __init__(
        self,
        surface: TargetSurface,
        pacer: Optional[Pacer] = None,
        ledger: Optional[RunLedger] = None,
        exporter: Callable[..., ExportReceipt] = export_results,
        notify: Callable[[str], None] = print,
    ):
        self.surface = surface
        self.pacer = pacer or Pacer()
        self.ledger = ledger or RunLedger()
        self.exporter = exporter
        self.notify = notify
        self.selector = SelectionController(surface, self.pacer)
        self.configurator = WorkflowConfigurator(surface, self.pacer)
        self.refresher = RefreshSynchronizer(surface, self.pacer)
        self.reader = MetricReader(surface)
        self.last_outcome: Optional[BatchOutcome] = None
        self._lock = threading.Lock()
        self._running = False
        self._worker: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._running

    def _claim(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._running = True
            # any cancel() from here on must reach the run
            self.pacer.token.reset()
            return True

    def _release(self) -> None:
        with self._lock:
            self._running = False

    def run(self, config: RunConfiguration) -> Optional[BatchOutcome]:
        """Run a whole batch on the calling thread. Returns None if one is already running."""
        if not self._claim():
            print("⚠️ A batch is already running on this page; ignoring the new request.")
            return None
        return self._execute(config)

    def start(self, config: RunConfiguration) -> bool:
        """Acknowledge immediately and run the batch on a worker thread."""
        if not self._claim():
            print("⚠️ A batch is already running on this page; ignoring the new request.")
            return False
        self._worker = threading.Thread(target=self._execute, args=(config,), name="tv-batch", daemon=True)
        self._worker.start()
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[BatchOutcome]:
        if self._worker is not None:
            self._worker.join(timeout)
        return self.last_outcome

    def cancel(self) -> None:
        self.pacer.token.cancel()

    def _execute(self, config: RunConfiguration) -> BatchOutcome:
        outcome = BatchOutcome()
        self.last_outcome = outcome
        thresholds = Thresholds.from_config(config)
        try:
            self.ledger.start(config.strategy_name or "batch")
            print(f"\n🚀 Starting batch backtest (max {config.max_symbols} symbols)")
            outcome.items = resolve_items(self.surface, config, self.pacer)
            if not outcome.items.identifiers:
                names = " / ".join(config.watchlists) or "watchlist"
                raise SourceNotFound(f"No {names} watchlist or screener table with symbols found on the page.")

            total = len(outcome.items.identifiers)
            for index, identifier in enumerate(outcome.items.identifiers):
                self.pacer.check("next symbol")
                print(f"\n=== SYMBOL {index + 1}/{total}: {identifier} ===")
                item = self._process_item(config, outcome, index, identifier, thresholds)
                outcome.diagnostics.append(item)
                self.ledger.record(item)

            outcome.receipt = self.exporter(outcome.results, config.export_destination)
            outcome.summary = self._summarize(outcome)
        except SourceNotFound as exc:
            outcome.aborted = exc.kind
            outcome.summary = str(exc)
        except RunCancelled as exc:
            outcome.aborted = exc.kind
            print(f"🛑 Batch cancelled: {exc}")
            if outcome.results:
                outcome.receipt = self._export_partial(outcome, config)
            outcome.summary = (
                f"Batch cancelled after {len(outcome.diagnostics)} symbols, {len(outcome.results)} kept."
            )
        except Exception as exc:
            outcome.aborted = type(exc).__name__
            outcome.summary = f"Batch aborted by an unexpected error: {exc}"
            print(f"❌ {outcome.summary}")
        finally:
            self.ledger.finalize(outcome.summary)
            self._release()
        self.notify(outcome.summary)
        return outcome

    def _export_partial(self, outcome: BatchOutcome, config: RunConfiguration) -> ExportReceipt:
        try:
            return self.exporter(outcome.results, config.export_destination)
        except Exception as exc:
            print(f"❌ Export of partial results failed: {exc}")
            return ExportReceipt(
                config.export_destination, len(outcome.results), ok=False, error=DeliveryFailed(str(exc))
            )

    def _select(
        self, items: ResolvedItems, index: int, identifier: str, item: ItemDiagnostic
    ) -> Tuple[bool, Optional[RowHandle]]:
        if isinstance(items.source, NamedCollection):
            selection = self.selector.select(identifier, ordinal=index)
            item.selection_trail = [f"{state.value}:{attempt}" if attempt else state.value for state, attempt in selection.trail]
            return selection.verified, selection.handle
        # screener table: symbol search in the chart header, row click as a fallback
        switched = probe("symbol search", self.surface.switch_symbol, identifier, default=False)
        if not switched:
            switched = probe("table row click", self.surface.click_table_row, index, default=False)
        item.selection_trail = ["symbol_search" if switched else "failed"]
        return bool(switched), None

    def _process_item(
        self,
        config: RunConfiguration,
        outcome: BatchOutcome,
        index: int,
        identifier: str,
        thresholds: Thresholds,
    ) -> ItemDiagnostic:
        items = outcome.items
        item = ItemDiagnostic(
            index=index,
            identifier=identifier,
            min_pnl_percent=thresholds.min_pnl_percent,
            min_sharpe_ratio=thresholds.min_sharpe_ratio,
        )
        record = MetricRecord.empty(identifier, items.group_label)
        handle: Optional[RowHandle] = None
        try:
            item.selected, handle = self._select(items, index, identifier, item)
            if not item.selected:
                item.note(SelectionFailed(f"could not select {identifier}"))
            else:
                report = self.configurator.apply_configuration(config)
                item.configuration_missing = list(report.missing)
                for error in report.as_errors():
                    item.note(error)
                self.pacer.sleep(config.delay_between_symbols_ms, "symbol settle")
                self.configurator.open_report()
                item.refreshed = self.refresher.wait_for_refresh(
                    config.refresh_appear_timeout_ms, config.refresh_post_click_ms
                )
                if not item.refreshed:
                    item.note(RefreshTimeout(f"no outdated-report prompt within {config.refresh_appear_timeout_ms} ms"))
                self.pacer.sleep(POST_REFRESH_SETTLE_MS, "post refresh settle")
                record = self.reader.read_metrics(identifier, items.group_label)
        except RunCancelled:
            raise
        except Exception as exc:
            print(f"  ❌ {identifier}: pipeline error, continuing with an empty record: {exc}")
            item.note(exc)
            record = MetricRecord.empty(identifier, items.group_label)

        verdict = classify(record, thresholds)
        item.record = record.to_dict()
        item.pnl_percent = verdict.pnl_percent
        item.sharpe_ratio = verdict.sharpe_ratio
        item.decision = verdict.decision

        if verdict.drop:
            if isinstance(items.source, NamedCollection) and handle is not None:
                item.deleted = delete_symbol(self.selector, identifier, handle, index)
            else:
                print(f"  ⚠️ {identifier} below threshold, flagged")
        elif verdict.keep:
            outcome.results.append(record)
            print(f"  ✅ {identifier} kept")
        return item

    def _summarize(self, outcome: BatchOutcome) -> str:
        processed = len(outcome.diagnostics)
        text = f"Batch finished: {processed} symbols processed, {len(outcome.results)} kept, {outcome.dropped} below threshold."
        receipt = outcome.receipt
        if receipt is None:
            return text
        if receipt.ok:
            return f"{text} Results exported to {receipt.destination}."
        return f"{text} Export to {receipt.destination} failed: {receipt.error}"
