import sys
from pathlib import Path

from bots._profile_launch import launch_persistent, shutdown, wait_for_chart
from bots.tradingview import TradingViewSurface
from controller import BatchController
from settings import ConfigStore


def main() -> None:
    # optional first argument: path to the settings JSON
    store = ConfigStore(Path(sys.argv[1]) if len(sys.argv) > 1 else None)
    if store.ensure_file():
        print(f"ℹ️ Wrote default settings to {store.path}")
    config = store.get()

    print(f"🎯 Strategy: {config.strategy_name or '(keep current)'} | timeframe: {config.timeframe or '(keep current)'}")
    print(f"🎯 Thresholds: PnL ≥ {config.min_pnl_percent:g}% and Sharpe ≥ {config.min_sharpe_ratio:g}")

    playwright = None
    context = None
    try:
        playwright, context, page = launch_persistent(config.start_url, config.profile_dir, headless=config.headless)
        if not wait_for_chart(page):
            input("👉 Open the chart with your watchlist (log in if needed), then press Enter…")

        controller = BatchController(TradingViewSurface(page))
        outcome = controller.run(config)
        if outcome and not config.headless:
            input("✅ Done. Inspect the page, then press Enter to close the browser…")
    finally:
        shutdown(playwright, context)


if __name__ == "__main__":
    main()
