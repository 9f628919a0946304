from __future__ import annotations

import logging

import pytest

from reservation_report.reconcile.classify import classify, classify_platform
from reservation_report.reconcile.model import OsCategory


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Linux/UNIX", OsCategory.LINUX),
        ("Linux/UNIX (Amazon VPC)", OsCategory.LINUX),
        ("Windows", OsCategory.WINDOWS),
        ("Windows (Amazon VPC)", OsCategory.WINDOWS),
        ("Red Hat Enterprise Linux", OsCategory.RHEL),
    ],
)
def test_classify_known_labels(raw: str, expected: OsCategory) -> None:
    assert classify(raw) is expected


def test_classify_is_case_insensitive() -> None:
    assert classify("WINDOWS") is classify("windows") is classify("Windows") is OsCategory.WINDOWS
    assert classify("linux/unix (amazon vpc)") is OsCategory.LINUX
    assert classify("red hat ENTERPRISE linux") is OsCategory.RHEL


def test_classify_unknown_logs_error_and_does_not_raise(caplog) -> None:
    with caplog.at_level(logging.ERROR):
        assert classify("SUSE Linux") is OsCategory.UNKNOWN
    assert any("SUSE Linux" in rec.getMessage() and rec.levelno == logging.ERROR for rec in caplog.records)


def test_classify_empty_and_none_are_unknown() -> None:
    assert classify("") is OsCategory.UNKNOWN
    assert classify(None) is OsCategory.UNKNOWN


def test_classify_is_deterministic() -> None:
    for raw in ("Linux/UNIX", "Windows (Amazon VPC)", "anything else"):
        assert classify(raw) is classify(raw)


def test_classify_platform_shortcut_only_yields_linux_or_windows() -> None:
    assert classify_platform(None) is OsCategory.LINUX
    assert classify_platform("") is OsCategory.LINUX
    assert classify_platform("windows") is OsCategory.WINDOWS
    # Any platform hint is read as Windows; RHEL is never produced on the usage side.
    assert classify_platform("Red Hat Enterprise Linux") is OsCategory.WINDOWS
