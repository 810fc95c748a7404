"""
Tests for the batch controller.

Verifies:
- Symbols run in discovery order and one failure never stops the batch
- Only one batch runs per controller at a time
- Cancellation and unexpected errors always release the running flag
- Dropped watchlist symbols are deleted; table symbols are only flagged
"""

import json
import threading

from controller import BatchController
from exporter import ExportReceipt
from fakes import FakeSurface, VirtualPacer, report
from settings import RunConfiguration
from surface import RowInfo


def _config(**overrides):
    base = {"strategy_name": "My Strategy", "timeframe": "4h", "export_destination": "memory://results"}
    base.update(overrides)
    return RunConfiguration.from_mapping(base)


class RecordingExporter:
    def __init__(self):
        self.calls = []

    def __call__(self, records, destination):
        self.calls.append(([record.identifier for record in records], destination))
        return ExportReceipt(destination, len(records), ok=True)


def _controller(surface, ledger, pacer=None, exporter=None, notify=None):
    return BatchController(
        surface,
        pacer=pacer or VirtualPacer(),
        ledger=ledger,
        exporter=exporter or RecordingExporter(),
        notify=notify or (lambda summary: None),
    )


class TestBatchRun:
    def test_keeps_passing_symbols_and_deletes_failing_ones(self, watchlist_surface, ledger):
        exporter = RecordingExporter()
        controller = _controller(watchlist_surface, ledger, exporter=exporter)

        outcome = controller.run(_config())

        assert outcome.aborted is None
        assert [record.identifier for record in outcome.results] == ["AAPL", "NVDA"]
        assert all(record.group_label == "US" for record in outcome.results)
        assert [item.decision for item in outcome.diagnostics] == ["keep", "drop", "keep"]
        assert watchlist_surface.deleted == ["TSLA"]
        assert ledger.find("TSLA").deleted is True
        assert exporter.calls == [(["AAPL", "NVDA"], "memory://results")]
        assert outcome.summary.startswith("Batch finished: 3 symbols processed, 2 kept, 1 below threshold.")

    def test_selection_failure_does_not_stop_the_batch(self, watchlist_surface, ledger):
        watchlist_surface.missing_rows.add("TSLA")
        controller = _controller(watchlist_surface, ledger)

        outcome = controller.run(_config())

        assert [item.identifier for item in outcome.diagnostics] == ["AAPL", "TSLA", "NVDA"]
        assert [record.identifier for record in outcome.results] == ["AAPL", "NVDA"]
        failed = ledger.find("TSLA")
        assert failed.selected is False
        assert failed.decision == "undecided"
        assert failed.errors[0].startswith("selection_failed")
        assert watchlist_surface.deleted == []

    def test_each_symbol_waits_and_refreshes(self, watchlist_surface, ledger):
        pacer = VirtualPacer()
        controller = _controller(watchlist_surface, ledger, pacer=pacer)

        controller.run(_config(delay_between_symbols_ms=2500))

        assert pacer.count("symbol settle") == 3
        assert ("symbol settle", 2500) in pacer.sleeps
        assert pacer.count("report recompute") == 3
        assert all(item.refreshed for item in ledger.entries)

    def test_refresh_timeout_is_noted_and_metrics_still_read(self, watchlist_surface, ledger):
        watchlist_surface.outdated_after_polls = None
        controller = _controller(watchlist_surface, ledger)

        outcome = controller.run(_config())

        assert [record.identifier for record in outcome.results] == ["AAPL", "NVDA"]
        assert any(error.startswith("refresh_timeout") for error in ledger.find("AAPL").errors)

    def test_partial_configuration_is_noted(self, watchlist_surface, ledger):
        watchlist_surface.controls.discard("timeframe")
        controller = _controller(watchlist_surface, ledger)

        controller.run(_config())

        assert ledger.find("AAPL").configuration_missing == ["timeframe menu"]
        assert ledger.find("AAPL").errors[0].startswith("configuration_partial")

    def test_item_pipeline_error_degrades_to_empty_record(self, watchlist_surface, ledger):
        class FlakyPacer(VirtualPacer):
            def sleep(self, ms, label=""):
                if label == "symbol settle" and not self.count("symbol settle"):
                    self.sleeps.append((label, ms))
                    raise RuntimeError("page detached")
                super().sleep(ms, label)

        controller = _controller(watchlist_surface, ledger, pacer=FlakyPacer())

        outcome = controller.run(_config())

        assert outcome.aborted is None
        assert [record.identifier for record in outcome.results] == ["NVDA"]
        broken = ledger.find("AAPL")
        assert broken.decision == "undecided"
        assert broken.record["total_pnl"] == ""
        assert broken.errors[-1] == "RuntimeError: page detached"

    def test_ledger_writes_run_capture(self, watchlist_surface, ledger, tmp_path):
        controller = _controller(watchlist_surface, ledger)

        controller.run(_config())

        run_dirs = list((tmp_path / "captures").iterdir())
        assert len(run_dirs) == 1
        lines = (run_dirs[0] / "items.jsonl").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["identifier"] for line in lines] == ["AAPL", "TSLA", "NVDA"]
        assert "Summary: Batch finished" in (run_dirs[0] / "summary.txt").read_text(encoding="utf-8")


class TestSourceSelection:
    def test_no_source_aborts_with_single_notification(self, ledger):
        notices = []
        exporter = RecordingExporter()
        controller = _controller(FakeSurface(title=None, table=None), ledger, exporter=exporter, notify=notices.append)

        outcome = controller.run(_config())

        assert outcome.aborted == "source_not_found"
        assert len(notices) == 1
        assert "watchlist" in notices[0]
        assert exporter.calls == []
        assert controller.running is False

    def test_table_source_flags_instead_of_deleting(self, ledger):
        surface = FakeSurface(
            title=None,
            table=[RowInfo(first_cell="TSLA"), RowInfo(first_cell="AAPL")],
            reports={"TSLA": report(pnl="−4.20%", sharpe="0.60"), "AAPL": report(pnl="+25.40%", sharpe="1.80")},
        )
        controller = _controller(surface, ledger)

        outcome = controller.run(_config())

        assert [record.identifier for record in outcome.results] == ["AAPL"]
        assert outcome.results[0].group_label == ""
        assert ledger.find("TSLA").decision == "drop"
        assert ledger.find("TSLA").deleted is False
        assert surface.deleted == []

    def test_table_row_click_when_symbol_search_unavailable(self, ledger):
        surface = FakeSurface(
            title=None,
            table=[RowInfo(first_cell="AAPL")],
            reports={"AAPL": report(pnl="+25.40%", sharpe="1.80")},
        )
        surface.symbol_search = False
        controller = _controller(surface, ledger)

        outcome = controller.run(_config())

        assert [record.identifier for record in outcome.results] == ["AAPL"]


class TestRunGuard:
    def test_nested_run_is_rejected(self, watchlist_surface, ledger):
        nested = []

        def exporter(records, destination):
            nested.append(controller.run(_config()))
            return ExportReceipt(destination, len(records), ok=True)

        controller = _controller(watchlist_surface, ledger, exporter=exporter)

        outcome = controller.run(_config())

        assert nested == [None]
        assert outcome.aborted is None
        assert controller.running is False

    def test_start_acknowledges_and_rejects_second_start(self, watchlist_surface, ledger):
        release = threading.Event()
        notices = []

        def exporter(records, destination):
            release.wait(5)
            return ExportReceipt(destination, len(records), ok=True)

        controller = _controller(watchlist_surface, ledger, exporter=exporter, notify=notices.append)

        assert controller.start(_config()) is True
        assert controller.start(_config()) is False

        release.set()
        outcome = controller.wait(timeout=5)

        assert outcome is not None
        assert [record.identifier for record in outcome.results] == ["AAPL", "NVDA"]
        assert len(notices) == 1
        assert controller.running is False

    def test_unexpected_error_still_releases(self, watchlist_surface, ledger):
        def exporter(records, destination):
            raise RuntimeError("disk on fire")

        controller = _controller(watchlist_surface, ledger, exporter=exporter)

        outcome = controller.run(_config())

        assert outcome.aborted == "RuntimeError"
        assert controller.running is False
        assert controller.run(_config()) is not None


class TestCancellation:
    def test_cancel_stops_at_next_wait(self, watchlist_surface, ledger):
        exporter = RecordingExporter()

        class CancelOnClick(FakeSurface):
            def click_row(self, handle):
                if handle.identifier == "TSLA":
                    controller.cancel()
                return super().click_row(handle)

        surface = CancelOnClick(symbols=watchlist_surface.symbols, reports=watchlist_surface.reports)
        controller = _controller(surface, ledger, exporter=exporter)

        outcome = controller.run(_config())

        assert outcome.aborted == "run_cancelled"
        assert [item.identifier for item in outcome.diagnostics] == ["AAPL"]
        assert exporter.calls == [(["AAPL"], "memory://results")]
        assert outcome.summary == "Batch cancelled after 1 symbols, 1 kept."
        assert controller.running is False

    def test_token_is_reset_for_the_next_run(self, watchlist_surface, ledger):
        controller = _controller(watchlist_surface, ledger)
        controller.cancel()

        outcome = controller.run(_config())

        assert outcome.aborted is None
        assert len(outcome.results) == 2

    def test_cancel_right_after_start_is_kept(self, watchlist_surface, ledger):
        gate = threading.Event()

        class GatedSurface(FakeSurface):
            def collection_title(self):
                gate.wait(5)
                return super().collection_title()

        exporter = RecordingExporter()
        surface = GatedSurface(symbols=watchlist_surface.symbols, reports=watchlist_surface.reports)
        controller = _controller(surface, ledger, exporter=exporter)

        assert controller.start(_config()) is True
        controller.cancel()
        gate.set()
        outcome = controller.wait(timeout=5)

        assert outcome.aborted == "run_cancelled"
        assert outcome.diagnostics == []
        assert exporter.calls == []
        assert controller.running is False

    def test_failing_partial_export_still_notifies(self, watchlist_surface, ledger):
        notices = []

        def exporter(records, destination):
            raise OSError("disk full")

        class CancelOnClick(FakeSurface):
            def click_row(self, handle):
                if handle.identifier == "TSLA":
                    controller.cancel()
                return super().click_row(handle)

        surface = CancelOnClick(symbols=watchlist_surface.symbols, reports=watchlist_surface.reports)
        controller = _controller(surface, ledger, exporter=exporter, notify=notices.append)

        outcome = controller.run(_config())

        assert outcome.aborted == "run_cancelled"
        assert outcome.receipt.ok is False
        assert outcome.receipt.error.kind == "delivery_failed"
        assert notices == ["Batch cancelled after 1 symbols, 1 kept."]
        assert controller.running is False
