from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field
from .summary import build_recommendations
from ..config import LATEST_CONTROLLER_VERSION
from ..engine import context as facts
from ..engine.context import AuditContext
from ..utils.findings import ServiceExposure


class ControllerSection(BaseModel):
    deployment_type: str
    version: str
    image: str
    latest_version: str = LATEST_CONTROLLER_VERSION


class AdmissionSection(BaseModel):
    service_type: str
    cluster_ip: str
    external_ip: str
    publicly_exposed: bool


class SecuritySection(BaseModel):
    abusebsi_compliant: bool
    snippet_annotations_enabled: bool
    network_policies_count: int


class AuditResults(BaseModel):
    passed: int
    failed: int
    warnings: int
    info: int


class AuditReport(BaseModel):
    audit_timestamp: str
    domain: str
    admin_email: str
    cluster_version: str
    namespace: str
    controller: ControllerSection
    admission_controller: AdmissionSection
    security: SecuritySection
    audit_results: AuditResults
    recommendations: List[str] = Field(default_factory=list)


def build_report(ctx: AuditContext, now: Optional[datetime] = None) -> AuditReport:
    now = now or datetime.now(timezone.utc)
    exposure = ctx.admission_exposure
    exposed = exposure is not ServiceExposure.CLUSTER_IP
    networkpolicies = ctx.fact(facts.NETWORK_POLICIES, 0)
    return AuditReport(
        audit_timestamp=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        domain=ctx.domain,
        admin_email=ctx.contact,
        cluster_version=str(ctx.fact(facts.CLUSTER_VERSION)),
        namespace=ctx.namespace,
        controller=ControllerSection(
            deployment_type=ctx.workload_kind.value,
            version=ctx.controller_version,
            image=str(ctx.fact(facts.CONTROLLER_IMAGE)),
        ),
        admission_controller=AdmissionSection(
            service_type=exposure.value,
            cluster_ip=str(ctx.fact(facts.ADMISSION_CLUSTER_IP, "")),
            external_ip=str(ctx.fact(facts.ADMISSION_EXTERNAL_IP, "")),
            publicly_exposed=exposed,
        ),
        security=SecuritySection(
            abusebsi_compliant=not exposed,
            snippet_annotations_enabled=ctx.fact(facts.ALLOW_SNIPPETS, "") == "true",
            network_policies_count=networkpolicies if isinstance(networkpolicies, int) else 0,
        ),
        audit_results=AuditResults(
            passed=ctx.pass_count,
            failed=ctx.fail_count,
            warnings=ctx.warn_count,
            info=ctx.info_count,
        ),
        recommendations=build_recommendations(ctx.controller_version, exposure),
    )


def emit(ctx: AuditContext, now: Optional[datetime] = None) -> str:
    return build_report(ctx, now).model_dump_json(indent=2)
