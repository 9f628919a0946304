from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Account:
    """
    One AWS account in scope for the report. Credentials come from the named
    profile (or the default chain) and, when role_arn is set, an assumed role.
    """

    name: str
    regions: Tuple[str, ...] = ()
    profile: Optional[str] = None
    role_arn: Optional[str] = None
    external_id: Optional[str] = None

    def with_regions(self, regions: Iterable[str]) -> Account:
        return Account(
            name=self.name,
            regions=tuple(regions),
            profile=self.profile,
            role_arn=self.role_arn,
            external_id=self.external_id,
        )


def split_regions(value: Any, field_name: str = "regions") -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = [r.strip() for r in value.split(",")]
    elif isinstance(value, (list, tuple)) and all(isinstance(r, str) for r in value):
        items = [r.strip() for r in value]
    else:
        raise ValueError(f"Config field '{field_name}' must be a list of strings or comma-separated string")
    # De-duplicate while keeping the configured order
    return tuple(dict.fromkeys(r for r in items if r))


def parse_accounts(raw: Any, default_regions: Sequence[str] = ()) -> List[Account]:
    """
    Build Account objects from the 'accounts' config value.

    Accepts a list of mappings ({name, regions, profile, role_arn, external_id})
    or bare account names. Accounts without regions inherit default_regions.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("Config field 'accounts' must be a list")
    accounts: List[Account] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw):
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            raise ValueError(f"accounts[{idx}] must be a mapping or account name")
        data: Dict[str, Any] = dict(item)
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError(f"accounts[{idx}] is missing 'name'")
        if name in seen:
            raise ValueError(f"Duplicate account name: {name}")
        seen.add(name)
        regions = split_regions(data.get("regions"), f"accounts[{idx}].regions") or tuple(default_regions)
        accounts.append(
            Account(
                name=name,
                regions=regions,
                profile=str(data["profile"]) if data.get("profile") else None,
                role_arn=str(data["role_arn"]) if data.get("role_arn") else None,
                external_id=str(data["external_id"]) if data.get("external_id") else None,
            )
        )
    return accounts


def account_region_pairs(accounts: Sequence[Account]) -> List[Tuple[Account, str]]:
    """
    Flatten accounts into (account, region) work items in configuration order.
    """
    return [(account, region) for account in accounts for region in account.regions]
