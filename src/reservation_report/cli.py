from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console

from .agent import ReservationReportCachingAgent
from .auth.providers import caller_identity
from .aws.clients import Ec2ClientFactory, build_client_config
from .cache.file import FileProviderCache
from .config import RunConfig, dump_config, load_run_config
from .export.csv import write_csv
from .export.json import write_report_json, write_run_summary
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .reconcile.model import ReservationReport
from .reconcile.publish import latest_report, publish_cache_result
from .util.errors import AuthResolutionError, ExitCode, ExportError, as_exit_code
from .util.rich_progress import RunProgress, render_report_table, render_run_summary_table
from .util.time import to_iso
from .util.timing import StepTimers, log_event

LOG = get_logger(__name__)

OUT_SCHEMA_VERSION = "1"


def _client_factory(cfg: RunConfig) -> Ec2ClientFactory:
    return Ec2ClientFactory(
        build_client_config(
            connect_timeout=cfg.connect_timeout,
            read_timeout=cfg.read_timeout,
            max_pool_connections=max(10, cfg.workers),
        )
    )


def _write_exports(cfg: RunConfig, agent: ReservationReportCachingAgent, timers: StepTimers) -> Dict[str, str]:
    report = agent.last_report
    if report is None:
        return {}
    log_event(LOG, logging.INFO, "Export started", step="export", phase="start", timers=timers)
    artifacts: Dict[str, str] = {}
    try:
        report_path = cfg.outdir / "report.json"
        write_report_json(report, report_path)
        artifacts["report"] = str(report_path)

        csv_path = cfg.outdir / "reservations.csv"
        write_csv(report, csv_path)
        artifacts["csv"] = str(csv_path)

        if cfg.parquet:
            from .export.parquet import write_parquet

            parquet_path = cfg.outdir / "reservations.parquet"
            write_parquet(report, parquet_path)
            artifacts["parquet"] = str(parquet_path)
    except Exception as e:
        log_event(LOG, logging.ERROR, "Export failed", step="export", phase="error", timers=timers, error=str(e))
        raise ExportError(f"Failed to export report to {cfg.outdir}: {e}") from e
    log_event(
        LOG,
        logging.INFO,
        "Export complete",
        step="export",
        phase="complete",
        timers=timers,
        outdir=str(cfg.outdir),
        artifacts=sorted(artifacts),
    )
    return artifacts


def cmd_run(cfg: RunConfig) -> int:
    cfg.outdir.mkdir(parents=True, exist_ok=True)
    add_run_log_file(cfg.outdir / "logs" / "run.log")
    timers = StepTimers()
    cache = FileProviderCache(cfg.cache_dir)

    with RunProgress(enabled=cfg.progress) as progress:
        agent = ReservationReportCachingAgent(
            _client_factory(cfg),
            cfg.accounts,
            workers=cfg.workers,
            max_pages=cfg.max_pages,
            progress=progress,
        )
        result = agent.load_data()

    log_event(LOG, logging.INFO, "Publishing report", step="publish", phase="start", timers=timers)
    publish_cache_result(cache, result)
    log_event(
        LOG,
        logging.INFO,
        "Report published",
        step="publish",
        phase="complete",
        timers=timers,
        cache_dir=str(cfg.cache_dir),
    )

    artifacts = _write_exports(cfg, agent, timers)
    report = agent.last_report
    stats = agent.last_stats.to_dict()
    totals = report.totals() if report else {}
    status = "PARTIAL" if stats["failures"] else "OK"
    summary: Dict[str, Any] = {
        "schema_version": OUT_SCHEMA_VERSION,
        "status": status,
        "start": to_iso(report.start) if report else None,
        "end": to_iso(report.end) if report else None,
        "totals": totals,
        "collection": stats,
        "artifacts": artifacts,
        "config": dump_config(cfg),
    }
    write_run_summary(summary, cfg.outdir / "run_summary.json")

    if cfg.progress and report is not None:
        console = Console()
        render_report_table(report, console=console)
        render_run_summary_table(
            status=status,
            totals=totals,
            stats=stats,
            accounts=[a.name for a in cfg.accounts],
            outdir=str(cfg.outdir),
            console=console,
        )
    return 0


def cmd_show(cfg: RunConfig) -> int:
    report = latest_report(FileProviderCache(cfg.cache_dir))
    if report is None:
        print(f"No report published in {cfg.cache_dir}")
        return 1
    if cfg.key is not None:
        row = report.find(cfg.key)
        if row is None:
            print(f"No bucket {cfg.key.to_string()} in the latest report")
            return 1
        report = ReservationReport(start=report.start, end=report.end, reservations=(row,))
    render_report_table(report)
    return 0


def cmd_list_accounts(cfg: RunConfig) -> int:
    for account in cfg.accounts:
        regions = ",".join(account.regions) if account.regions else "(enabled regions)"
        source = account.role_arn or account.profile or "default credentials"
        print(f"{account.name}\t{regions}\t{source}")
    return 0


def cmd_validate_auth(cfg: RunConfig) -> int:
    factory = _client_factory(cfg)
    failures: List[str] = []
    for account in cfg.accounts:
        try:
            identity = caller_identity(factory.context(account), config=factory.config)
        except AuthResolutionError as e:
            LOG.warning("Authentication failed", extra={"account": account.name, "error": str(e)})
            print(f"FAIL: {account.name}: {e}")
            failures.append(account.name)
            continue
        print(f"OK: {account.name}: {identity['Arn']} (account {identity['Account']})")
    return int(ExitCode.AUTH_ERROR) if failures else 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "run":
            code = cmd_run(cfg)
        elif command == "show":
            code = cmd_show(cfg)
        elif command == "list-accounts":
            code = cmd_list_accounts(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        else:
            raise ValueError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when output is piped to `head`; treat as a normal early exit.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
