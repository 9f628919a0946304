from __future__ import annotations

import types

import pytest
from botocore.exceptions import ClientError, ProfileNotFound

from reservation_report.auth import providers as auth_providers
from reservation_report.aws.accounts import Account
from reservation_report.aws.clients import build_client_config
from reservation_report.util.errors import AuthResolutionError, ExitCode, as_exit_code


class _FakeSts:
    def __init__(self, error=None) -> None:
        self.error = error
        self.calls = []

    def assume_role(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return {"Credentials": {"AccessKeyId": "AKIA", "SecretAccessKey": "secret", "SessionToken": "token"}}


def _fake_boto3(sts, created, configs=None):
    def _client(service, config=None):
        if configs is not None:
            configs.append((service, config))
        return sts

    def _session(**kwargs):
        created.append(kwargs)
        return types.SimpleNamespace(client=_client)

    return types.SimpleNamespace(Session=_session)


def test_resolve_session_uses_profile(monkeypatch) -> None:
    created = []
    monkeypatch.setattr(auth_providers, "boto3", _fake_boto3(_FakeSts(), created))

    ctx = auth_providers.resolve_session(Account("prod", ("us-east-1",), profile="prod-ro"))

    assert ctx.method == "profile"
    assert created == [{"profile_name": "prod-ro"}]


def test_resolve_session_assumes_role(monkeypatch) -> None:
    created = []
    sts = _FakeSts()
    monkeypatch.setattr(auth_providers, "boto3", _fake_boto3(sts, created))
    account = Account("shared", role_arn="arn:aws:iam::111122223333:role/Report", external_id="ext-1")

    ctx = auth_providers.resolve_session(account)

    assert ctx.method == "assume_role"
    assert sts.calls[0]["RoleArn"] == "arn:aws:iam::111122223333:role/Report"
    assert sts.calls[0]["ExternalId"] == "ext-1"
    assert created[-1] == {
        "aws_access_key_id": "AKIA",
        "aws_secret_access_key": "secret",
        "aws_session_token": "token",
    }


def test_resolve_session_maps_assume_role_errors(monkeypatch) -> None:
    denied = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "AssumeRole")
    monkeypatch.setattr(auth_providers, "boto3", _fake_boto3(_FakeSts(error=denied), []))

    with pytest.raises(AuthResolutionError) as excinfo:
        auth_providers.resolve_session(Account("shared", role_arn="arn:aws:iam::1:role/x"))
    assert "AccessDenied" in str(excinfo.value)
    assert as_exit_code(excinfo.value) == int(ExitCode.AUTH_ERROR)


def test_resolve_session_maps_missing_profile(monkeypatch) -> None:
    def _session(**kwargs):
        raise ProfileNotFound(profile=kwargs.get("profile_name"))

    monkeypatch.setattr(auth_providers, "boto3", types.SimpleNamespace(Session=_session))

    with pytest.raises(AuthResolutionError):
        auth_providers.resolve_session(Account("prod", profile="missing"))


def test_sts_clients_use_the_given_client_config(monkeypatch) -> None:
    configs = []
    sts = _FakeSts()
    sts.get_caller_identity = lambda: {"Account": "111122223333", "Arn": "arn:aws:sts::111122223333:assumed-role/Report/x"}
    monkeypatch.setattr(auth_providers, "boto3", _fake_boto3(sts, [], configs))
    cfg = build_client_config(connect_timeout=1, read_timeout=2)

    ctx = auth_providers.resolve_session(Account("shared", role_arn="arn:aws:iam::111122223333:role/Report"), config=cfg)
    identity = auth_providers.caller_identity(ctx, config=cfg)

    assert configs == [("sts", cfg), ("sts", cfg)]
    assert identity["Account"] == "111122223333"
