import pytest
from ingressaudit.config import MIGRATION_NOTICE, RETIREMENT_NOTICE
from ingressaudit.reporting.summary import StatusTier, build_recommendations, overall_status
from ingressaudit.utils.findings import ServiceExposure


def test_latest_version_on_cluster_ip():
    recs = build_recommendations("v1.14.3", ServiceExposure.CLUSTER_IP)
    assert recs == [RETIREMENT_NOTICE, MIGRATION_NOTICE]


def test_outdated_and_exposed():
    recs = build_recommendations("v1.10.0", ServiceExposure.LOAD_BALANCER)
    assert len(recs) == 4
    assert recs[0] == "Upgrade controller to v1.14.3"
    assert recs[1] == "Change admission controller service to ClusterIP"
    assert recs[-2:] == [RETIREMENT_NOTICE, MIGRATION_NOTICE]


@pytest.mark.parametrize("version,exposure", [
    ("unknown", ServiceExposure.UNKNOWN),
    ("v1.14.3", ServiceExposure.NODE_PORT),
    ("v1.9.0", ServiceExposure.CLUSTER_IP),
])
def test_never_empty_and_advisories_last(version, exposure):
    recs = build_recommendations(version, exposure)
    assert recs
    assert recs[-2:] == [RETIREMENT_NOTICE, MIGRATION_NOTICE]


@pytest.mark.parametrize("failed,warned,tier", [
    (0, 0, StatusTier.EXCELLENT),
    (0, 3, StatusTier.GOOD),
    (1, 0, StatusTier.NEEDS_ATTENTION),
    (2, 5, StatusTier.NEEDS_ATTENTION),
    (3, 0, StatusTier.CRITICAL),
])
def test_status_tiers(failed, warned, tier):
    assert overall_status(failed, warned) is tier
