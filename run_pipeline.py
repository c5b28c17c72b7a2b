"""Run one PortföyAI analysis cycle and write the result to Excel.

Usage:
    python run_pipeline.py --assets feed.json                      # medium risk, 3% monthly target
    python run_pipeline.py --assets feed.json --risk low --target 2
    python run_pipeline.py --assets feed.json --prices closes.json --macro macro.json
    python run_pipeline.py --assets feed.json --auto               # only on Sunday 09:00+, once a week
    python run_pipeline.py --assets feed.json --rule-based         # skip the AI engine
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent / "src"))

from dotenv import load_dotenv
load_dotenv()

import pandas as pd
from openpyxl.styles import Font, PatternFill
from pydantic import TypeAdapter, ValidationError

from portfoy_ai.agents.analysis_orchestrator import run_analysis_cycle
from portfoy_ai.config.constants import (
    DEFAULT_AI_TIMEOUT,
    DEFAULT_RISK_LEVEL,
    DEFAULT_TARGET_RETURN,
)
from portfoy_ai.exceptions import StorageError
from portfoy_ai.schemas.analysis_output import RISK_LEVELS
from portfoy_ai.schemas.cycle_output import AnalysisCycleOutput
from portfoy_ai.schemas.market_data import Asset
from portfoy_ai.schemas.snapshot_output import DATA_SOURCES
from portfoy_ai.tools.auto_scheduler import last_auto_analysis_label, run_if_due, should_trigger
from portfoy_ai.tools.kv_store import DiskCacheStore
from portfoy_ai.tools.prompt_builder import build_macro_context
from portfoy_ai.tools.token_tracker import tracker as token_tracker

_ASSET_LIST = TypeAdapter(list[Asset])


# ---------------------------------------------------------------------------
# CLI Argument Parsing
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="PortföyAI allocation engine: one analysis cycle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  python run_pipeline.py --assets data/feed.json                 default risk/target
  python run_pipeline.py --assets data/feed.json --risk high     aggressive blueprint
  python run_pipeline.py --assets data/feed.json --auto          weekly scheduled run
""",
    )
    parser.add_argument(
        "--assets", required=True,
        help="JSON asset feed: a list of assets, or {\"assets\": [...], \"data_source\": ...}",
    )
    parser.add_argument(
        "--target", type=float, default=DEFAULT_TARGET_RETURN,
        help=f"Monthly target return in percent (default: {DEFAULT_TARGET_RETURN})",
    )
    parser.add_argument(
        "--risk", choices=RISK_LEVELS, default=DEFAULT_RISK_LEVEL,
        help=f"Risk level (default: {DEFAULT_RISK_LEVEL})",
    )
    parser.add_argument(
        "--store", default="data/portfoy_ai_store",
        help="Key-value store directory for snapshots, baseline and keys (default: data/portfoy_ai_store)",
    )
    parser.add_argument(
        "--prices", default=None,
        help="JSON {symbol: [daily closes, oldest first]} for technical signals",
    )
    parser.add_argument(
        "--macro", default=None,
        help="Macro context: plain text file, or JSON list of {title, content} search results",
    )
    parser.add_argument(
        "--output", default="output",
        help="Output directory (default: output)",
    )
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_AI_TIMEOUT,
        help=f"Seconds to wait for the AI engine (default: {DEFAULT_AI_TIMEOUT:.0f})",
    )
    parser.add_argument(
        "--auto", action="store_true", default=False,
        help="Only run if the weekly Sunday 09:00 guard allows it",
    )
    parser.add_argument(
        "--rule-based", action="store_true", default=False,
        help="Skip the AI engine and use the rule-based engine only",
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

def load_assets(path: str) -> tuple[list[Asset], str]:
    """Read the asset feed; returns (assets, data_source)."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    data_source = "live"
    if isinstance(raw, dict):
        data_source = raw.get("data_source", "live")
        raw = raw.get("assets", [])
    if data_source not in DATA_SOURCES:
        raise ValueError(f"{path}: data_source must be one of {DATA_SOURCES}, got {data_source!r}")
    return _ASSET_LIST.validate_python(raw), data_source


def load_price_history(path: Optional[str]) -> Optional[dict[str, list[float]]]:
    if not path:
        return None
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a JSON object of symbol -> closes")
    return raw


def load_macro_context(path: Optional[str]) -> Optional[str]:
    """Plain text is used as-is; a JSON list of search results is compressed first."""
    if not path:
        return None
    text = Path(path).read_text(encoding="utf-8")
    if Path(path).suffix.lower() == ".json":
        context = build_macro_context(json.loads(text))
        return context.text if context.success else None
    return text.strip() or None


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

_HEADER_FONT = Font(bold=True)
_HEADER_FILL = PatternFill(start_color="B8CCE4", end_color="B8CCE4", fill_type="solid")
_GREEN = PatternFill(start_color="90EE90", end_color="90EE90", fill_type="solid")
_YELLOW = PatternFill(start_color="FFFF00", end_color="FFFF00", fill_type="solid")
_RED = PatternFill(start_color="FF0000", end_color="FF0000", fill_type="solid")
_WHITE_FONT = Font(color="FFFFFF")

# Map column header -> {cell value -> (fill, use_white_font)}
_COLOR_MAP = {
    "Action": {
        "NEW": (_GREEN, False),
        "BUY": (_GREEN, False),
        "HOLD": (_YELLOW, False),
        "SELL": (_RED, True),
    },
}


def _style_sheet(ws, widths: dict[str, int]) -> None:
    """Header styling, column widths and category color fills."""
    header_map = {}
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        header_map[cell.value] = cell.column_letter
    for col, width in widths.items():
        ws.column_dimensions[col].width = width

    for header, colors in _COLOR_MAP.items():
        col = header_map.get(header)
        if col is None:
            continue
        for row in range(2, ws.max_row + 1):
            cell = ws[f"{col}{row}"]
            if cell.value in colors:
                fill, white = colors[cell.value]
                cell.fill = fill
                if white:
                    cell.font = _WHITE_FONT


def write_analysis_excel(cycle: AnalysisCycleOutput, out_path: Path) -> Path:
    """Write the cycle result to analysis_<date>.xlsx."""
    filepath = out_path / f"analysis_{date.today().isoformat()}.xlsx"
    analysis = cycle.analysis

    # --- Summary ---
    summary_rows = [
        {"Field": "Timestamp", "Value": analysis.timestamp},
        {"Field": "Engine", "Value": "AI" if analysis.is_ai_generated else "Rule-based"},
        {"Field": "AI Error", "Value": cycle.ai_error or "None"},
        {"Field": "Risk Level", "Value": cycle.snapshot.risk_level},
        {"Field": "Target Return (monthly %)", "Value": cycle.snapshot.target_return},
        {"Field": "Data Source", "Value": cycle.snapshot.data_source},
        {"Field": "Technical Signals", "Value": cycle.technical_signal_count},
        {"Field": "Macro Context", "Value": "Yes" if cycle.macro_context_used else "No"},
        {"Field": "Snapshot ID", "Value": cycle.snapshot.id},
        {"Field": "Has Changes", "Value": cycle.diff.has_changes},
        {"Field": "", "Value": ""},
        {"Field": "Summary", "Value": analysis.summary},
        {"Field": "Risk Note", "Value": analysis.risk_note},
    ]
    for label, text in (
        ("Why Now", analysis.why_now),
        ("Risks", analysis.risks),
        ("Opportunities", analysis.opportunities),
    ):
        if text:
            summary_rows.append({"Field": label, "Value": text})
    df_summary = pd.DataFrame(summary_rows)

    # --- Recommendations ---
    df_recs = pd.DataFrame([
        {
            "Symbol": r.symbol,
            "Name": r.name,
            "Allocation %": r.allocation,
            "Rationale": r.rationale,
        }
        for r in analysis.recommendations
    ], columns=["Symbol", "Name", "Allocation %", "Rationale"])

    # --- Diff ---
    df_diff = pd.DataFrame([
        {
            "Symbol": d.symbol,
            "Name": d.name,
            "Action": d.action,
            "Allocation %": d.allocation,
            "Prev Allocation %": d.prev_allocation,
            "Delta": d.allocation_delta,
            "Material": d.symbol in cycle.diff.changed_symbols,
        }
        for d in cycle.diff.diffs
    ], columns=["Symbol", "Name", "Action", "Allocation %", "Prev Allocation %", "Delta", "Material"])

    # --- Performance of the previous snapshot ---
    perf = cycle.previous_performance
    df_perf = pd.DataFrame([
        {
            "Symbol": m.symbol,
            "Name": m.name,
            "Allocation %": m.allocation,
            "Entry Price": m.price_at_recommendation,
            "Current Price": m.current_price,
            "Change %": m.change_pct,
            "Weighted %": m.weighted_contribution,
        }
        for m in (perf.metrics if perf else [])
    ])

    with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
        df_summary.to_excel(writer, sheet_name="Summary", index=False)
        _style_sheet(writer.sheets["Summary"], {"A": 28, "B": 100})
        df_recs.to_excel(writer, sheet_name="Recommendations", index=False)
        _style_sheet(writer.sheets["Recommendations"], {"A": 14, "B": 32, "C": 14, "D": 80})
        df_diff.to_excel(writer, sheet_name="Diff", index=False)
        _style_sheet(writer.sheets["Diff"], {"A": 14, "B": 32, "C": 10})
        if perf is not None:
            df_perf.to_excel(writer, sheet_name="Performance", index=False)
            ws = writer.sheets["Performance"]
            _style_sheet(ws, {"A": 14, "B": 32})
            footer = ws.max_row + 2
            ws.cell(row=footer, column=1, value="Total P&L %").font = _HEADER_FONT
            ws.cell(row=footer, column=7, value=perf.total_pnl)
            ws.cell(row=footer + 1, column=1, value="Days Since").font = _HEADER_FONT
            ws.cell(row=footer + 1, column=7, value=perf.days_since)
        if token_tracker.has_records:
            df_tokens = pd.DataFrame(token_tracker.get_by_function())
            df_tokens.to_excel(writer, sheet_name="Token Usage", index=False)
            _style_sheet(writer.sheets["Token Usage"], {"A": 22})

    return filepath


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def _print_cycle(cycle: AnalysisCycleOutput) -> None:
    analysis = cycle.analysis
    engine = "AI" if analysis.is_ai_generated else "rule-based"
    print(f"[Analysis] {engine} result at {analysis.timestamp}")
    if cycle.ai_error == "invalid_credential":
        print("[Analysis] Warning: Claude API key was rejected. Update it and re-run.")
    elif cycle.ai_error == "rate_limited":
        print("[Analysis] Warning: Claude API rate limit reached. Try again later.")
    elif cycle.ai_error == "timeout":
        print("[Analysis] Warning: AI engine timed out, rule-based result used.")

    for r in analysis.recommendations:
        print(f"  {r.symbol:<12} {r.allocation:>3}%  {r.name}")
    if not analysis.recommendations:
        print("  (no recommendations)")

    if cycle.previous_performance is not None:
        perf = cycle.previous_performance
        status = f"{perf.total_pnl:+.2f}%" if perf.has_current_prices else "no current prices"
        print(f"[Performance] Previous snapshot ({perf.days_since} days): {status}")

    diff = cycle.diff
    print(f"[Diff] new={len(diff.new_symbols)}, sell={len(diff.removed_symbols)}, "
          f"changed={len(diff.changed_symbols)}")


def main(
    assets_file: str,
    target_return: float,
    risk_level: str,
    store_dir: str,
    output_dir: str,
    prices_file: Optional[str] = None,
    macro_file: Optional[str] = None,
    ai_timeout: float = DEFAULT_AI_TIMEOUT,
    auto: bool = False,
    rule_based: bool = False,
) -> Optional[AnalysisCycleOutput]:
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    try:
        assets, data_source = load_assets(assets_file)
        price_history = load_price_history(prices_file)
        macro_context = load_macro_context(macro_file)
    except (OSError, ValueError, ValidationError) as e:
        print(f"\nERROR: Cannot read inputs: {e}")
        sys.exit(2)

    try:
        store = DiskCacheStore(store_dir)
    except StorageError as e:
        print(f"\nERROR: {e.message}")
        sys.exit(2)

    def run_cycle() -> AnalysisCycleOutput:
        return run_analysis_cycle(
            assets, target_return, risk_level, store,
            price_history=price_history,
            macro_context=macro_context,
            ai_timeout=ai_timeout,
            data_source=data_source,
            use_ai=not rule_based,
        )

    print(f"[Analysis] {len(assets)} assets, risk={risk_level}, target={target_return}% monthly")

    if auto:
        if not should_trigger(store):
            label = last_auto_analysis_label(store)
            print(f"[Auto] Not due. Last automatic analysis: {label or 'never'}")
            return None
        results: list[AnalysisCycleOutput] = []
        run_if_due(store, lambda: results.append(run_cycle()))
        if not results:
            print("[Auto] Automatic analysis failed, see log")
            return None
        cycle = results[0]
    else:
        cycle = run_cycle()

    _print_cycle(cycle)
    filepath = write_analysis_excel(cycle, out_path)
    print(f"[Analysis] Saved: {filepath}")

    if token_tracker.has_records:
        summary = token_tracker.get_summary()
        print(f"[Tokens] {summary['num_calls']} LLM calls, "
              f"{summary['total_tokens']:,} tokens, "
              f"${summary['estimated_cost_usd']:.4f}")
    return cycle


if __name__ == "__main__":
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    main(
        assets_file=args.assets,
        target_return=args.target,
        risk_level=args.risk,
        store_dir=args.store,
        output_dir=args.output,
        prices_file=args.prices,
        macro_file=args.macro,
        ai_timeout=args.timeout,
        auto=args.auto,
        rule_based=args.rule_based,
    )
