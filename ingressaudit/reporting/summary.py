from enum import Enum
from typing import List
from ..config import LATEST_CONTROLLER_VERSION, MIGRATION_NOTICE, RETIREMENT_NOTICE
from ..utils.findings import ServiceExposure


class StatusTier(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"
    CRITICAL = "CRITICAL"


def overall_status(failed: int, warned: int) -> StatusTier:
    if failed == 0 and warned == 0:
        return StatusTier.EXCELLENT
    if failed == 0:
        return StatusTier.GOOD
    if failed <= 2:
        return StatusTier.NEEDS_ATTENTION
    return StatusTier.CRITICAL


def build_recommendations(version: str, exposure: ServiceExposure) -> List[str]:
    """Ordered remediation advice; never empty, the two migration advisories always close the list."""
    recs = []
    if version != LATEST_CONTROLLER_VERSION:
        recs.append(f"Upgrade controller to {LATEST_CONTROLLER_VERSION}")
    if exposure is not ServiceExposure.CLUSTER_IP:
        recs.append("Change admission controller service to ClusterIP")
    recs.append(RETIREMENT_NOTICE)
    recs.append(MIGRATION_NOTICE)
    return recs
