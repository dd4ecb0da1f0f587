"""
Human-readable sync and trade output for the terminal.

Every CLI command uses these formatters. Journal receives the same data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from ledger_core.contracts import Trade

if TYPE_CHECKING:
    from data.sync import SyncReport
    from ledger_core.contracts import CleanupPlan


def _fmt_qty(qty: float) -> str:
    if float(qty).is_integer():
        return str(int(qty))
    return f"{qty:.4f}".rstrip("0")


def format_sync_report(report: SyncReport) -> str:
    """Per-venue counts followed by merge totals."""
    lines = ["=== Sync ==="]
    for v in report.venues:
        if not v.ok:
            lines.append(f"  {v.venue:12s} FAILED: {v.error}")
            continue
        lines.append(
            f"  {v.venue:12s} records {v.records:>5d} | fills {v.fills:>5d} | trades {v.trades:>5d}"
            f" | +{v.stats.added} ~{v.stats.updated} ={v.stats.duplicate}"
        )
        extras = []
        if v.skipped:
            extras.append(f"{len(v.skipped)} skipped")
        if v.unfilled:
            extras.append(f"{v.unfilled} unfilled")
        if v.ambiguous:
            extras.append(f"{v.ambiguous} ambiguous side")
        if v.orphans:
            extras.append(f"{v.orphans} orphan closes")
        if v.stats.unchanged:
            extras.append(f"{v.stats.unchanged} already current")
        if extras:
            lines.append(f"  {'':12s} ({', '.join(extras)})")
    total = report.stats
    lines.append("")
    lines.append(
        f"Added {total.added}, updated {total.updated}, duplicate {total.duplicate}"
        f" ({total.unchanged} already current)"
    )
    if report.failed:
        lines.append(f"Failed venues: {', '.join(v.venue for v in report.failed)}")
    lines.append("===")
    return "\n".join(lines)


def format_trade_line(t: Trade) -> str:
    bot = "BOT" if t.is_bot else "   "
    when = t.exit_time.strftime("%Y-%m-%d %H:%M") if t.is_closed else t.entry_time.strftime("%Y-%m-%d %H:%M")
    pnl = f"${t.pnl:+,.2f} ({t.pnl_pct:+.1f}%)" if t.is_closed else "open"
    return (
        f"  {when}  {t.venue:10s} {t.instrument:14s} {t.direction.value:5s} {_fmt_qty(t.qty):>10s}"
        f"  {t.entry_price:>10.4f} -> {t.exit_price:<10.4f} {pnl:>22s} {bot}  {t.id}"
    )


def format_trades(trades: Sequence[Trade]) -> str:
    if not trades:
        return "No trades stored. Run 'ledger sync' first."
    closed = [t for t in trades if t.is_closed]
    total_pnl = sum(t.pnl for t in closed)
    wins = sum(1 for t in closed if t.pnl > 0)
    lines = [f"=== Trades ({len(trades)}) ==="]
    lines.extend(format_trade_line(t) for t in trades)
    lines.append("")
    lines.append(f"Closed: {len(closed)} (W:{wins} / L:{len(closed) - wins})  Net PnL: ${total_pnl:+,.2f}")
    lines.append("===")
    return "\n".join(lines)


def format_cleanup_plan(plan: CleanupPlan, level: str, *, applied: bool) -> str:
    verb = "Removed" if applied else "Would remove"
    lines = [
        f"=== Dedupe ({level}) ===",
        f"Keep         : {len(plan.keep)}",
        f"{verb:13s}: {len(plan.remove)}",
    ]
    for trade_id in plan.remove[:20]:
        lines.append(f"  - {trade_id}")
    if len(plan.remove) > 20:
        lines.append(f"  ... and {len(plan.remove) - 20} more")
    lines.append("===")
    return "\n".join(lines)
