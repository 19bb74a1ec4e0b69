from .base import Probe
from ..config import LATEST_CONTROLLER_VERSION
from ..engine.context import AuditContext
from ..utils.findings import ServiceExposure, WorkloadKind

OUTDATED_MINORS = ("v1.13.", "v1.12.", "v1.11.", "v1.10.")
VULNERABLE_MINORS = ("v1.9.", "v1.8.", "v1.7.")


class VulnerabilityProbe(Probe):
    name = "vulnerabilities"
    title = "PHASE 7 — VULNERABILITY SCAN"

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        self._cves(ctx)
        self._exposure_compliance(ctx)

    def _cves(self, ctx: AuditContext) -> None:
        ctx.section("Known CVEs for Current Version")
        version = ctx.controller_version
        ctx.step(f"Checking CVE database for version {version}...")
        current_minor = LATEST_CONTROLLER_VERSION.rsplit(".", 1)[0] + "."
        if version == LATEST_CONTROLLER_VERSION:
            ctx.passed(f"No known critical CVEs for {version}")
        elif version.startswith(current_minor):
            ctx.warn(f"Version {version} may have issues — upgrade to {LATEST_CONTROLLER_VERSION}")
        elif version.startswith(OUTDATED_MINORS):
            ctx.fail(f"Version {version} is significantly outdated — multiple known CVEs")
            ctx.info(f"CRITICAL: Upgrade to {LATEST_CONTROLLER_VERSION} immediately")
        elif version.startswith(VULNERABLE_MINORS):
            ctx.fail(f"CRITICAL: Version {version} has known critical security vulnerabilities")
            ctx.info(f"Upgrade to {LATEST_CONTROLLER_VERSION} IMMEDIATELY")
        else:
            ctx.warn(f"Unknown version {version} — cannot verify CVE status")

    def _exposure_compliance(self, ctx: AuditContext) -> None:
        ctx.section("Admission Exposure Compliance")
        if ctx.report_ref:
            ctx.step(f"Checking {ctx.report_ref} specific vulnerability...")
        exposure = ctx.admission_exposure
        if ctx.workload_kind is WorkloadKind.UNKNOWN:
            ctx.info(f"No ingress-nginx controller in namespace '{ctx.namespace}' — compliance check not applicable")
        elif exposure is ServiceExposure.CLUSTER_IP:
            ctx.passed(f"Admission controller not publicly exposed for {ctx.domain} (compliant)")
        else:
            ctx.fail(f"Admission controller publicly exposed via {exposure.value} (NON-COMPLIANT for {ctx.domain})")
            ctx.info("Exposed admission webhooks allow unauthenticated configuration injection")
