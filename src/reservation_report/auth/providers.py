from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3

from ..aws.accounts import Account
from ..util.errors import AuthResolutionError, map_aws_error

DEFAULT_SESSION_NAME = "reservation-report"


@dataclass(frozen=True)
class AuthContext:
    """
    Resolved credentials for one account. session is a boto3.Session already
    carrying either profile credentials or assumed-role credentials.
    """

    account: str
    method: str  # profile|default|assume_role
    session: Any
    role_arn: Optional[str] = None


def _base_session(profile: Optional[str]) -> Any:
    try:
        if profile:
            return boto3.Session(profile_name=profile)
        return boto3.Session()
    except Exception as e:
        mapped = map_aws_error(e, f"AWS SDK error while loading profile {profile or 'default'}")
        if mapped:
            raise AuthResolutionError(str(mapped)) from e
        raise AuthResolutionError(f"Failed to load AWS profile {profile or 'default'}: {e}") from e


def _session_name() -> str:
    return os.getenv("RI_REPORT_ROLE_SESSION_NAME") or DEFAULT_SESSION_NAME


def resolve_session(account: Account, *, config: Optional[Any] = None) -> AuthContext:
    """
    Resolve the boto3 session for an account.
    - profile only: named profile from the shared config/credentials files
    - neither: default credential chain (env, instance profile, SSO cache, ...)
    - role_arn: STS AssumeRole from the profile/default session
    config is an optional botocore Config (timeouts, retries) for the STS client.
    """
    base = _base_session(account.profile)
    if not account.role_arn:
        method = "profile" if account.profile else "default"
        return AuthContext(account=account.name, method=method, session=base)

    params: Dict[str, Any] = {"RoleArn": account.role_arn, "RoleSessionName": _session_name()}
    if account.external_id:
        params["ExternalId"] = account.external_id
    try:
        creds = base.client("sts", config=config).assume_role(**params)["Credentials"]
    except Exception as e:
        mapped = map_aws_error(e, f"AWS SDK error while assuming {account.role_arn}")
        if mapped:
            raise AuthResolutionError(str(mapped)) from e
        raise AuthResolutionError(f"Failed to assume role {account.role_arn}: {e}") from e
    session = boto3.Session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
    )
    return AuthContext(account=account.name, method="assume_role", session=session, role_arn=account.role_arn)


def caller_identity(ctx: AuthContext, *, config: Optional[Any] = None) -> Dict[str, str]:
    """
    Return the STS caller identity (Account, Arn, UserId) for a resolved context.
    """
    try:
        resp = ctx.session.client("sts", config=config).get_caller_identity()
    except Exception as e:
        mapped = map_aws_error(e, f"AWS SDK error while validating credentials for {ctx.account}")
        if mapped:
            raise AuthResolutionError(str(mapped)) from e
        raise
    return {k: str(resp.get(k) or "") for k in ("Account", "Arn", "UserId")}
