import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from errors import DeliveryFailed
from metrics import MetricRecord

SUBMIT_TIMEOUT_S = 30.0

# wire names expected by the results endpoint, in CSV column order
EXPORT_FIELDS = (
    ("symbol", "identifier"),
    ("market", "group_label"),
    ("strategyName", "strategy_name"),
    ("totalPnL", "total_pnl"),
    ("maxEquityDrawdown", "max_drawdown"),
    ("totalTrades", "total_trades"),
    ("winningTradesPercent", "win_rate"),
    ("profitFactor", "profit_factor"),
    ("sharpeRatio", "sharpe_ratio"),
)


@dataclass
class ExportReceipt:
    destination: str
    count: int
    ok: bool
    error: Optional[DeliveryFailed] = None


def to_payload(records: Sequence[MetricRecord]) -> List[Dict[str, str]]:
    return [{wire: getattr(record, attr) for wire, attr in EXPORT_FIELDS} for record in records]


def is_remote(destination: str) -> bool:
    parsed = urlparse((destination or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def submit_results(records: Sequence[MetricRecord], url: str, client: Optional[httpx.Client] = None) -> None:
    payload = to_payload(records)
    if client is None:
        with httpx.Client(timeout=SUBMIT_TIMEOUT_S) as owned:
            owned.post(url, json=payload).raise_for_status()
    else:
        client.post(url, json=payload).raise_for_status()


def write_csv(records: Sequence[MetricRecord], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow([wire for wire, _ in EXPORT_FIELDS])
        for row in to_payload(records):
            writer.writerow([row[wire] for wire, _ in EXPORT_FIELDS])


def export_results(
    records: Sequence[MetricRecord],
    destination: str,
    client: Optional[httpx.Client] = None,
) -> ExportReceipt:
    """Deliver kept records to a results endpoint (http/https) or a CSV file path."""
    destination = (destination or "").strip()
    try:
        if is_remote(destination):
            submit_results(records, destination, client=client)
        else:
            write_csv(records, Path(destination))
    except (httpx.HTTPError, OSError) as exc:
        print(f"❌ Export to {destination} failed: {exc}")
        return ExportReceipt(destination, len(records), ok=False, error=DeliveryFailed(str(exc)))
    print(f"📤 Exported {len(records)} results to {destination}")
    return ExportReceipt(destination, len(records), ok=True)
