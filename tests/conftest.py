import pytest

from diagnostics import RunLedger
from fakes import FakeSurface, VirtualPacer, report


@pytest.fixture
def pacer():
    return VirtualPacer()


@pytest.fixture
def ledger(tmp_path):
    return RunLedger(tmp_path / "captures")


@pytest.fixture
def watchlist_surface():
    """Three-symbol US watchlist: AAPL and NVDA pass, TSLA fails on PnL."""
    return FakeSurface(
        symbols=["NASDAQ:AAPL", "NASDAQ:TSLA", "NASDAQ:NVDA"],
        reports={
            "AAPL": report(pnl="+25.40%", sharpe="1.80"),
            "TSLA": report(pnl="−4.20%", sharpe="0.60"),
            "NVDA": report(pnl="+31.00%", sharpe="2.10"),
        },
    )
