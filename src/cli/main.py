"""
CLI entry point: ledger sync | trades | dedupe | annotate | health.

Every command loads config from --config (default config.yaml),
prints a human-readable summary, and logs to the journal.
"""

import logging
import sys

import click
from dotenv import load_dotenv

from config import load_config

load_dotenv()

logger = logging.getLogger("ledger")


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _load_ledger_config(cfg):
    from config.ledger_config import load_ledger_config

    return load_ledger_config(
        config_path=cfg.sync.ledger_config_path or None,
        overrides_path=cfg.sync.ledger_overrides_path or None,
    )


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """fill-ledger: turn venue fills into a deduplicated trade journal."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- ledger sync ----------


@cli.command()
@click.option("--venue", "venue_names", multiple=True, help="Only sync these venues (repeatable).")
@click.option("--dry-run", is_flag=True, default=False, help="Merge in memory; do not write the store.")
@click.pass_context
def sync(ctx: click.Context, venue_names: tuple[str, ...], dry_run: bool) -> None:
    """Fetch fills from every configured venue, net them into trades and merge into the store."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_sync_report
    from cli.structured_log import StructuredEventLogger
    from data.fetcher import JsonFileFetcher
    from data.sync import SyncCoordinator
    from data.trade_repository import TradeRepository
    from journal import JournalWriter

    ledger_cfg = _load_ledger_config(cfg)
    sources = [v for v in cfg.enabled_venues() if not venue_names or v.name in venue_names]
    if not sources:
        click.echo("No venues to sync. Add venues to config.yaml or check --venue.")
        return

    fetchers = [JsonFileFetcher(v.name, v.path) for v in sources]
    repo = TradeRepository(cfg.store.path)
    events = StructuredEventLogger(enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url)
    journal = None if dry_run else JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)

    coordinator = SyncCoordinator(
        ledger_cfg,
        max_workers=cfg.sync.max_workers,
        events=events,
        journal=journal,
    )
    report = coordinator.run(fetchers, repo.load_store())
    click.echo(format_sync_report(report))

    if dry_run:
        click.echo(f"Dry run: {len(report.changed_ids)} trade(s) not written.")
        return
    written = repo.apply(report)
    click.echo(f"Wrote {written} trade(s) to {cfg.store.path}")


# ---------- ledger trades ----------


@cli.command()
@click.option("--venue", default=None, help="Filter by venue.")
@click.option("--status", "status_str", type=click.Choice(["open", "closed"]), default=None, help="Filter by status.")
@click.option("--limit", default=None, type=int, help="Show at most N trades.")
@click.pass_context
def trades(ctx: click.Context, venue: str | None, status_str: str | None, limit: int | None) -> None:
    """List stored trades."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_trades
    from data.trade_repository import TradeRepository
    from ledger_core.contracts import TradeStatus

    repo = TradeRepository(cfg.store.path)
    status = TradeStatus(status_str.upper()) if status_str else None
    click.echo(format_trades(repo.list_trades(venue=venue, status=status, limit=limit)))


# ---------- ledger dedupe ----------


@cli.command()
@click.option(
    "--level",
    type=click.Choice(["content", "normalized", "fuzzy"]),
    default="content",
    help="Fingerprint used to detect duplicates.",
)
@click.option("--apply", "apply_", is_flag=True, default=False, help="Delete the duplicates (default: report only).")
@click.pass_context
def dedupe(ctx: click.Context, level: str, apply_: bool) -> None:
    """Find stored trades that share a fingerprint; keep the first of each."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_cleanup_plan
    from cli.structured_log import StructuredEventLogger
    from data.trade_repository import TradeRepository
    from journal import JournalWriter
    from ledger_core.merge import plan_cleanup

    repo = TradeRepository(cfg.store.path)
    plan = plan_cleanup(repo.list_trades(), level)
    if apply_ and plan.remove:
        repo.delete(plan.remove)
        JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout).cleanup(level, plan.remove)
        events = StructuredEventLogger(enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url)
        events.cleanup(level, len(plan.keep), len(plan.remove))
    click.echo(format_cleanup_plan(plan, level, applied=apply_))


# ---------- ledger annotate ----------


@cli.command()
@click.argument("trade_id")
@click.option("--notes", default=None, help="Replace the trade's notes.")
@click.option("--strategy", "strategy_id", default=None, help="Strategy id.")
@click.option("--mistake", "mistakes", multiple=True, help="Mistake tag (repeatable; replaces existing).")
@click.option("--risk", "initial_risk", default=None, type=float, help="Initial risk in account currency.")
@click.option("--attachment", "attachments", multiple=True, help="Attachment id (repeatable; replaces existing).")
@click.pass_context
def annotate(
    ctx: click.Context,
    trade_id: str,
    notes: str | None,
    strategy_id: str | None,
    mistakes: tuple[str, ...],
    initial_risk: float | None,
    attachments: tuple[str, ...],
) -> None:
    """Set user annotations on a stored trade. Syncs never overwrite them."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_trade_line
    from data.trade_repository import TradeRepository

    changes: dict = {}
    if notes is not None:
        changes["notes"] = notes
    if strategy_id is not None:
        changes["strategy_id"] = strategy_id
    if mistakes:
        changes["mistakes"] = mistakes
    if initial_risk is not None:
        changes["initial_risk"] = initial_risk
    if attachments:
        changes["attachment_ids"] = attachments
    if not changes:
        click.echo("Nothing to change. Pass at least one option.")
        return

    repo = TradeRepository(cfg.store.path)
    try:
        trade = repo.annotate(trade_id, **changes)
    except KeyError:
        click.echo(f"No trade with id {trade_id}", err=True)
        raise SystemExit(1)
    click.echo("Updated:")
    click.echo(format_trade_line(trade))


# ---------- ledger health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, ledger config, store access, venue sources.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded ({len(cfg.venues)} venues)"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        ledger_cfg = _load_ledger_config(cfg)
        checks.append(("ledger_config", True, f"validated (version={ledger_cfg.version})"))
    except Exception as e:
        checks.append(("ledger_config", False, str(e)))

    try:
        from data.trade_repository import TradeRepository
        repo = TradeRepository(cfg.store.path)
        checks.append(("store", True, f"{repo.count()} trades in {cfg.store.path}"))
    except Exception as e:
        checks.append(("store", False, str(e)))

    from pathlib import Path

    for v in cfg.enabled_venues():
        exists = Path(v.path).exists()
        checks.append((f"venue:{v.name}", exists, v.path if exists else f"missing source {v.path}"))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
