import json
import math
import re
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

RUN_CAPTURE_DIR = Path("run_captures")


@dataclass
class ItemDiagnostic:
    """What happened to one symbol, kept for post-run inspection."""

    index: int
    identifier: str
    selected: bool = False
    selection_trail: List[str] = field(default_factory=list)
    configuration_missing: List[str] = field(default_factory=list)
    refreshed: bool = False
    record: Dict[str, str] = field(default_factory=dict)
    pnl_percent: float = math.nan
    sharpe_ratio: float = math.nan
    min_pnl_percent: float = math.nan
    min_sharpe_ratio: float = math.nan
    decision: str = "undecided"
    deleted: bool = False
    errors: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def note(self, error: Exception) -> None:
        kind = getattr(error, "kind", type(error).__name__)
        self.errors.append(f"{kind}: {error}")

    def sentence(self) -> str:
        parsed_pnl = "NaN" if math.isnan(self.pnl_percent) else f"{self.pnl_percent:g}"
        parsed_sharpe = "NaN" if math.isnan(self.sharpe_ratio) else f"{self.sharpe_ratio:g}"
        line = (
            f"{self.identifier} PnL={self.record.get('total_pnl', '')} Sharpe={self.record.get('sharpe_ratio', '')} "
            f"(parsedPnL={parsed_pnl} parsedSharpe={parsed_sharpe} "
            f"thresholdPnL={self.min_pnl_percent:g} thresholdSharpe={self.min_sharpe_ratio:g} "
            f"decision={self.decision} deleted={self.deleted})"
        )
        if self.errors:
            line += f" notes: {'; '.join(self.errors)}"
        return line

    def to_json(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, float) and math.isnan(value):
                payload[key] = None
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


def _slugify(value: str, max_tokens: int = 6) -> str:
    tokens = re.findall(r"[a-z0-9]+", value.lower())[:max_tokens]
    return "_".join(tokens) or "batch"


class RunLedger:
    """Per-run record of item diagnostics, optionally written under ``output_dir``."""

    def __init__(self, output_dir: Optional[Path] = RUN_CAPTURE_DIR):
        self.output_dir = Path(output_dir) if output_dir else None
        self.entries: List[ItemDiagnostic] = []
        self._label = ""
        self._start_time: Optional[datetime] = None
        self._run_dir: Optional[Path] = None
        self._active = False

    def start(self, label: str) -> None:
        self.entries = []
        self._label = label
        self._start_time = datetime.now(UTC)
        self._active = True
        self._run_dir = None
        if not self.output_dir:
            return
        timestamp = self._start_time.strftime("%Y%m%d-%H%M%S")
        run_dir = self.output_dir / f"run_{_slugify(label)}_{timestamp}"
        try:
            run_dir.mkdir(parents=True, exist_ok=True)
            self._run_dir = run_dir
        except Exception as exc:
            print(f"  • Failed to create run capture dir {run_dir}: {exc}")

    def record(self, item: ItemDiagnostic) -> None:
        self.entries.append(item)
        print(f"  📝 {item.sentence()}")
        if not self._active or not self._run_dir:
            return
        try:
            with (self._run_dir / "items.jsonl").open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(item.to_json(), ensure_ascii=False) + "\n")
        except Exception as exc:
            print(f"  • Failed to append diagnostics for {item.identifier}: {exc}")

    def finalize(self, summary: str) -> Optional[Path]:
        if not self._active:
            return None
        self._active = False
        if not self._run_dir:
            return None
        lines: List[str] = [f"Run: {self._label or 'batch'}"]
        if self._start_time:
            lines.append(f"Started: {self._start_time.isoformat()}")
        lines.append(f"Finished: {datetime.now(UTC).isoformat()}")
        lines.append(f"Summary: {summary}")
        lines.append("")
        lines.append("Items:")
        if not self.entries:
            lines.append("  No symbols were processed.")
        for entry in self.entries:
            lines.append(f"  {entry.index + 1}. {entry.sentence()}")
        try:
            (self._run_dir / "summary.txt").write_text("\n".join(lines).rstrip() + "\n", encoding="utf-8")
            print(f"🗂️ Run capture saved in {self._run_dir}")
        except Exception as exc:
            print(f"  • Failed to write run summary: {exc}")
        return self._run_dir

    def find(self, identifier: str) -> Optional[ItemDiagnostic]:
        return next((entry for entry in self.entries if entry.identifier == identifier), None)
