from kubernetes.client import ApiException
from .base import Probe
from ..config import CONTROLLER_POD_SELECTOR
from ..engine.context import AuditContext
from ..utils import kube
from ..utils.findings import WorkloadKind
from ..utils.resources import or_default


class PodSecurityProbe(Probe):
    name = "podsecurity"
    title = "PHASE 6 — POD SECURITY AUDIT"

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        self._pods(ctx)
        self._security_context(ctx)

    def _pods(self, ctx: AuditContext) -> None:
        ctx.section("Running Pods")
        ctx.step("Listing ingress-nginx pods...")
        try:
            pods = kube.list_pods(self.clients, ctx.namespace, CONTROLLER_POD_SELECTOR)
        except ApiException as e:
            ctx.warn(f"Could not list controller pods ({e.reason})")
            return
        ready = sum(1 for p in pods if p.ready)
        ctx.info(f"Total pods: {len(pods)}")
        ctx.info(f"Ready pods: {ready}")
        if pods and ready == len(pods):
            ctx.passed("All ingress-nginx pods are ready")
        elif pods:
            ctx.warn(f"Some pods not ready ({ready}/{len(pods)})")
        else:
            ctx.fail("No ingress-nginx pods found")

    def _security_context(self, ctx: AuditContext) -> None:
        ctx.section("Security Context")
        kind = ctx.workload_kind
        if kind is WorkloadKind.UNKNOWN:
            kind = WorkloadKind.DEPLOYMENT
        ctx.step("Checking runAsNonRoot...")
        try:
            wl = kube.read_workload(self.clients, kind, ctx.controller_name, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not read controller workload ({e.reason})")
            return
        if wl is None:
            ctx.warn("Controller workload not found — security context not checked")
            return

        ctx.info(f"runAsNonRoot: {or_default(wl.run_as_non_root)}")
        ctx.info(f"runAsUser:    {or_default(wl.run_as_user)}")
        if wl.run_as_non_root:
            ctx.passed("Running as non-root user")
        elif wl.run_as_user is not None and wl.run_as_user != 0:
            ctx.passed(f"Running as user {wl.run_as_user} (non-root)")
        else:
            ctx.warn("Security context should enforce non-root execution")

        ctx.step("Checking for privileged containers...")
        if wl.privileged:
            ctx.warn("Container running in privileged mode")
        else:
            ctx.passed("Container not running in privileged mode")
