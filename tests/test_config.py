from __future__ import annotations

from pathlib import Path

import pytest

from reservation_report.config import DEFAULT_ACCOUNT_NAME, RunConfig, load_run_config
from reservation_report.reconcile.model import OsCategory, ReservationKey
from reservation_report.util.pagination import DEFAULT_MAX_PAGES


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "RI_REPORT_PROFILES",
        "RI_REPORT_REGIONS",
        "RI_REPORT_WORKERS",
        "RI_REPORT_MAX_PAGES",
        "RI_REPORT_PARQUET",
        "RI_REPORT_OUTDIR",
        "RI_REPORT_CACHE_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_config() -> None:
    command, cfg = load_run_config(argv=["run"])
    assert command == "run"
    assert isinstance(cfg, RunConfig)
    assert [a.name for a in cfg.accounts] == [DEFAULT_ACCOUNT_NAME]
    assert cfg.workers > 0
    assert cfg.max_pages == DEFAULT_MAX_PAGES
    assert cfg.parquet is False
    # run writes into a timestamped directory under the base outdir
    assert cfg.outdir.parent == Path("out")


def test_config_file_accounts_and_regions(tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "regions: [us-east-1]\n"
        "accounts:\n"
        "  - name: prod\n"
        "    profile: prod\n"
        "    regions: [us-west-2, eu-west-1]\n"
        "  - name: shared\n"
        "    role_arn: arn:aws:iam::111122223333:role/ReservationReport\n"
        "workers: 8\n",
        encoding="utf-8",
    )

    _, cfg = load_run_config(argv=["list-accounts", "--config", str(cfg_path)])

    prod, shared = cfg.accounts
    assert prod.regions == ("us-west-2", "eu-west-1")
    assert prod.profile == "prod"
    assert shared.regions == ("us-east-1",)
    assert shared.role_arn == "arn:aws:iam::111122223333:role/ReservationReport"
    assert cfg.workers == 8


def test_env_overrides_config_file(monkeypatch, tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("workers: 3\nmax_pages: 10\n", encoding="utf-8")
    monkeypatch.setenv("RI_REPORT_WORKERS", "6")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.workers == 6
    assert cfg.max_pages == 10


def test_cli_overrides_env_and_config(monkeypatch, tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("workers: 3\nparquet: true\n", encoding="utf-8")
    monkeypatch.setenv("RI_REPORT_WORKERS", "6")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path), "--workers", "11", "--no-parquet"])
    assert cfg.workers == 11
    assert cfg.parquet is False


def test_profiles_flag_builds_one_account_per_profile() -> None:
    _, cfg = load_run_config(argv=["run", "--profiles", "prod,dev", "--regions", "us-east-1,us-west-2"])
    assert [(a.name, a.profile, a.regions) for a in cfg.accounts] == [
        ("prod", "prod", ("us-east-1", "us-west-2")),
        ("dev", "dev", ("us-east-1", "us-west-2")),
    ]


def test_regions_from_env(monkeypatch) -> None:
    monkeypatch.setenv("RI_REPORT_REGIONS", "ap-southeast-2")
    _, cfg = load_run_config(argv=["show"])
    assert cfg.regions == ["ap-southeast-2"]
    assert cfg.accounts[0].regions == ("ap-southeast-2",)


def test_invalid_boolean_in_config_raises(tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("parquet: maybe\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_run_config(argv=["run", "--config", str(cfg_path)])


def test_unknown_config_keys_warn(tmp_path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text('{"workers": 2, "query": "nope"}', encoding="utf-8")
    with pytest.warns(UserWarning):
        _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.workers == 2


def test_max_pages_must_be_positive() -> None:
    with pytest.raises(ValueError):
        load_run_config(argv=["run", "--max-pages", "-1"])


def test_show_key_is_parsed() -> None:
    _, cfg = load_run_config(argv=["show", "--key", "us-west-2b:rhel:r5.large"])
    assert cfg.key == ReservationKey("us-west-2b", OsCategory.RHEL, "r5.large")
    _, cfg = load_run_config(argv=["show"])
    assert cfg.key is None
