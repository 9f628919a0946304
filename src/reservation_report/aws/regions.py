from __future__ import annotations

from typing import Any, List

from ..util.errors import map_aws_error

BOOTSTRAP_REGION = "us-east-1"


def list_enabled_regions(ec2: Any) -> List[str]:
    """
    Return sorted region names enabled for the account (opt-in regions that are
    not opted in are excluded by DescribeRegions without AllRegions).
    """
    try:
        resp = ec2.describe_regions(AllRegions=False)
    except Exception as e:
        mapped = map_aws_error(e, "AWS error while listing enabled regions")
        if mapped:
            raise mapped from e
        raise
    regions = [str(r.get("RegionName")) for r in resp.get("Regions") or [] if r.get("RegionName")]
    return sorted(set(regions))
