import json
from datetime import datetime, timezone
from ingressaudit.engine import context as facts
from ingressaudit.reporting import json as json_report
from ingressaudit.reporting import text as text_report
from ingressaudit.utils.findings import ServiceExposure, WorkloadKind

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _populate(ctx, exposure):
    ctx.facts.update({
        facts.CLUSTER_VERSION: "v1.29.4",
        facts.DEPLOYMENT_TYPE: WorkloadKind.DEPLOYMENT,
        facts.CONTROLLER_VERSION: "v1.14.3",
        facts.CONTROLLER_IMAGE: "registry.k8s.io/ingress-nginx/controller:v1.14.3",
        facts.ADMISSION_SVC_TYPE: exposure,
        facts.ADMISSION_CLUSTER_IP: "10.96.0.12",
        facts.ALLOW_SNIPPETS: "true",
        facts.NETWORK_POLICIES: 3,
    })


def test_json_report_schema(ctx):
    _populate(ctx, ServiceExposure.CLUSTER_IP)
    ctx.passed("ok")
    ctx.warn("hmm")
    data = json.loads(json_report.emit(ctx, NOW))
    assert data["audit_timestamp"] == "2026-01-02T03:04:05Z"
    assert data["admin_email"] == "ops@example.org"
    assert data["cluster_version"] == "v1.29.4"
    assert data["controller"] == {
        "deployment_type": "Deployment",
        "version": "v1.14.3",
        "image": "registry.k8s.io/ingress-nginx/controller:v1.14.3",
        "latest_version": "v1.14.3",
    }
    assert data["admission_controller"]["publicly_exposed"] is False
    assert data["security"] == {
        "abusebsi_compliant": True,
        "snippet_annotations_enabled": True,
        "network_policies_count": 3,
    }
    assert data["audit_results"] == {"passed": 1, "failed": 0, "warnings": 1, "info": 0}
    assert len(data["recommendations"]) == 2


def test_exposed_admission_is_not_compliant(ctx):
    _populate(ctx, ServiceExposure.LOAD_BALANCER)
    report = json_report.build_report(ctx, NOW)
    assert report.admission_controller.publicly_exposed
    assert not report.security.abusebsi_compliant
    assert report.admission_controller.service_type == "LoadBalancer"


def test_unaudited_context_reports_unknowns(ctx):
    report = json_report.build_report(ctx, NOW)
    assert report.controller.deployment_type == "unknown"
    assert report.controller.version == "unknown"
    assert report.admission_controller.publicly_exposed
    assert report.security.network_policies_count == 0
    assert len(report.recommendations) == 4


def test_summary_block(ctx, tmp_path):
    _populate(ctx, ServiceExposure.NODE_PORT)
    ctx.report_ref = "CB-Report#1"
    ctx.text_report_file = tmp_path / "r.txt"
    ctx.json_report_file = tmp_path / "r.json"
    ctx.fail("exposed")
    text_report.write_summary(ctx)
    body = text_report.emit(ctx)
    assert "Overall Status: NEEDS ATTENTION" in body
    assert "NON-COMPLIANT" in body
    assert "Report ID: CB-Report#1" in body
    assert "STILL VULNERABLE" in body
    assert "1. Change admission controller service to ClusterIP" in body
    assert str(tmp_path / "r.json") in body
    assert "For questions: ops@example.org" in body
    # the summary is narrative only
    assert ctx.fail_count == 1 and len(ctx.findings) == 1


def test_summary_without_report_ref(ctx):
    _populate(ctx, ServiceExposure.CLUSTER_IP)
    text_report.write_summary(ctx)
    body = text_report.emit(ctx)
    assert "Overall Status: EXCELLENT" in body
    assert "Report ID" not in body
