from __future__ import annotations

import csv
import json
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from fakes import FakeEc2, FakeFactory, instance, reserved
from reservation_report import cli
from reservation_report.cache.file import FileProviderCache
from reservation_report.reconcile.model import OsCategory, ReservationDetail, ReservationReport
from reservation_report.reconcile.publish import latest_report, publish


@pytest.fixture(autouse=True)
def _quiet(monkeypatch) -> None:
    monkeypatch.setattr(cli, "setup_logging", lambda config=None: None)
    monkeypatch.setattr(cli, "add_run_log_file", lambda path: None)
    for name in ("RI_REPORT_PROFILES", "RI_REPORT_REGIONS", "RI_REPORT_CACHE_DIR", "RI_REPORT_OUTDIR", "RI_REPORT_PARQUET"):
        monkeypatch.delenv(name, raising=False)


def _exit_code(argv) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return excinfo.value.code


def test_run_publishes_and_exports(monkeypatch, tmp_path) -> None:
    ec2 = FakeEc2(
        reservations=[reserved("us-east-1a", "Linux/UNIX", "m4.large", 2)],
        pages=[[[instance("us-east-1a", "m4.large"), instance("us-east-1a", "m4.large", platform="windows")]]],
    )
    monkeypatch.setattr(cli, "_client_factory", lambda cfg: FakeFactory({("prod", "us-east-1"): ec2}))
    cache_dir = tmp_path / "cache"

    code = _exit_code(
        [
            "run",
            "--profiles",
            "prod",
            "--regions",
            "us-east-1",
            "--cache-dir",
            str(cache_dir),
            "--outdir",
            str(tmp_path / "out"),
            "--no-progress",
        ]
    )

    assert code == 0
    (run_dir,) = list((tmp_path / "out").iterdir())
    report = json.loads((run_dir / "report.json").read_text(encoding="utf-8"))
    assert report["reservations"] == [
        {"zone": "us-east-1a", "os": "LINUX", "instanceType": "m4.large", "reserved": 2, "used": 1},
        {"zone": "us-east-1a", "os": "WINDOWS", "instanceType": "m4.large", "reserved": 0, "used": 1},
    ]
    with (run_dir / "reservations.csv").open(encoding="utf-8", newline="") as f:
        assert len(list(csv.DictReader(f))) == 2

    summary = json.loads((run_dir / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "OK"
    assert summary["totals"]["reserved"] == 2
    assert summary["collection"]["pairs_ok"] == 1

    published = latest_report(FileProviderCache(cache_dir))
    assert published is not None
    assert published.to_dict() == report


def test_run_fails_on_unexpected_collector_error(monkeypatch, tmp_path) -> None:
    clients = {
        ("prod", "us-east-1"): FakeEc2(reservations=[reserved("us-east-1a", "Linux/UNIX", "m4.large", 1)]),
        ("prod", "eu-west-1"): FakeEc2(reserved_error=ConnectionError("boom")),
    }
    monkeypatch.setattr(cli, "_client_factory", lambda cfg: FakeFactory(clients))

    code = _exit_code(
        [
            "run",
            "--profiles",
            "prod",
            "--regions",
            "us-east-1,eu-west-1",
            "--cache-dir",
            str(tmp_path / "cache"),
            "--outdir",
            str(tmp_path / "out"),
            "--no-progress",
        ]
    )

    assert code != 0
    assert latest_report(FileProviderCache(tmp_path / "cache")) is None


def test_show_without_published_report(tmp_path, capsys) -> None:
    code = _exit_code(["show", "--cache-dir", str(tmp_path / "empty")])

    assert code == 1
    assert "No report published" in capsys.readouterr().out


def test_list_accounts_prints_scope(capsys) -> None:
    code = _exit_code(["list-accounts", "--profiles", "prod,dev", "--regions", "us-east-1"])

    assert code == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines == ["prod\tus-east-1\tprod", "dev\tus-east-1\tdev"]


def test_invalid_config_maps_to_config_exit_code(tmp_path) -> None:
    cfg_path = tmp_path / "bad.yaml"
    cfg_path.write_text("workers: many\n", encoding="utf-8")

    assert _exit_code(["list-accounts", "--config", str(cfg_path)]) == 2


def test_run_reports_partial_when_a_region_fails(monkeypatch, tmp_path) -> None:
    denied = ClientError({"Error": {"Code": "UnauthorizedOperation", "Message": "no"}}, "DescribeReservedInstances")
    clients = {
        ("prod", "us-east-1"): FakeEc2(reservations=[reserved("us-east-1a", "Linux/UNIX", "m4.large", 1)]),
        ("prod", "eu-west-1"): FakeEc2(reserved_error=denied),
    }
    monkeypatch.setattr(cli, "_client_factory", lambda cfg: FakeFactory(clients))

    code = _exit_code(
        [
            "run",
            "--profiles",
            "prod",
            "--regions",
            "us-east-1,eu-west-1",
            "--cache-dir",
            str(tmp_path / "cache"),
            "--outdir",
            str(tmp_path / "out"),
            "--no-progress",
        ]
    )

    assert code == 0
    (run_dir,) = list((tmp_path / "out").iterdir())
    summary = json.loads((run_dir / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "PARTIAL"
    assert [(f["account"], f["region"]) for f in summary["collection"]["failures"]] == [("prod", "eu-west-1")]
    published = latest_report(FileProviderCache(tmp_path / "cache"))
    assert published is not None
    assert published.totals()["reserved"] == 1


def _publish_one(cache_dir) -> None:
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)
    publish(
        FileProviderCache(cache_dir),
        ReservationReport.build(now, now, [ReservationDetail("us-east-1a", OsCategory.LINUX, "m4.large", reserved=2)]),
    )


def test_show_single_bucket_by_key(tmp_path) -> None:
    _publish_one(tmp_path / "cache")

    assert _exit_code(["show", "--cache-dir", str(tmp_path / "cache"), "--key", "us-east-1a:LINUX:m4.large"]) == 0


def test_show_reports_missing_bucket(tmp_path, capsys) -> None:
    _publish_one(tmp_path / "cache")

    code = _exit_code(["show", "--cache-dir", str(tmp_path / "cache"), "--key", "us-east-1b:WINDOWS:c5.large"])

    assert code == 1
    assert "No bucket us-east-1b:WINDOWS:c5.large in the latest report" in capsys.readouterr().out


def test_show_rejects_malformed_key(tmp_path) -> None:
    assert _exit_code(["show", "--cache-dir", str(tmp_path / "cache"), "--key", "us-east-1a:m4.large"]) == 2
