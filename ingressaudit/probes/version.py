import json
import logging
from kubernetes.client import ApiException
from .base import Probe
from ..config import HELM_CHART, HELM_RELEASE, LATEST_CHART_VERSION, LATEST_CONTROLLER_VERSION
from ..engine import context as facts
from ..engine.context import AuditContext
from ..errors import CommandError
from ..utils import kube
from ..utils.findings import FixSeverity, WorkloadKind
from ..utils.resources import ControllerWorkload, decode_helm_releases
from ..utils.shell import capture, run_cmd
from ..utils.versions import UNKNOWN, chart_version, extract_version, image_digest, image_registry

logger = logging.getLogger(__name__)

ALTERNATIVES = [
    "Gateway API (recommended) — Future-proof Kubernetes standard",
    "Traefik            — Drop-in replacement, actively maintained",
    "F5 NGINX Ingress   — Commercial, actively maintained",
    "Istio              — Service mesh with ingress capabilities",
]


def upgrade_command(namespace: str):
    return ["helm", "upgrade", HELM_RELEASE, HELM_CHART, "--version", LATEST_CHART_VERSION, "-n", namespace]


class VersionProbe(Probe):
    name = "version"
    title = "PHASE 2 — VERSION AUDIT"

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        ctx.facts[facts.DEPLOYMENT_TYPE] = WorkloadKind.UNKNOWN
        ctx.facts[facts.CONTROLLER_VERSION] = UNKNOWN

        wl = self._discover(ctx)
        if wl is None:
            return
        self._analyze_version(ctx, wl)
        self._helm(ctx)
        self._update_config(ctx, wl)
        self._lifecycle(ctx)

    def _discover(self, ctx: AuditContext):
        ctx.section("Controller Deployment Discovery")
        try:
            ctx.step("Checking for DaemonSet deployment...")
            wl = kube.read_workload(self.clients, WorkloadKind.DAEMONSET, ctx.controller_name, ctx.namespace)
            if wl is None:
                ctx.step("Not a DaemonSet, checking for Deployment...")
                wl = kube.read_workload(self.clients, WorkloadKind.DEPLOYMENT, ctx.controller_name, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not query controller workload ({e.reason})")
            return None

        if wl is None:
            ctx.fail(f"No {ctx.controller_name} found (neither DaemonSet nor Deployment)")
            ctx.step("Searching for alternative controller names...")
            try:
                for name in kube.list_workload_names(self.clients, ctx.namespace):
                    ctx.writeln(f"    {name}")
            except ApiException as e:
                logger.debug("cannot list workloads in %s: %s", ctx.namespace, e.reason)
            return None

        ctx.passed(f"Found controller as {wl.kind.value}")
        ctx.facts[facts.DEPLOYMENT_TYPE] = wl.kind
        ctx.facts[facts.CONTROLLER_IMAGE] = wl.image
        ctx.facts[facts.CONTROLLER_CONTAINER] = wl.container_name
        ctx.facts[facts.CONTROLLER_REPLICAS] = wl.replicas
        ctx.info(f"Ready replicas: {wl.replicas}")
        return wl

    def _analyze_version(self, ctx: AuditContext, wl: ControllerWorkload) -> None:
        ctx.section("Version Analysis")
        ctx.info(f"Deployment type:  {wl.kind.value}")
        ctx.info(f"Container image:  {wl.image}")

        ctx.step("Extracting version from image tag...")
        version = extract_version(wl.image)
        ctx.facts[facts.CONTROLLER_VERSION] = version
        ctx.info(f"Controller version: {version}")
        ctx.info(f"Image registry: {image_registry(wl.image)}")
        digest = image_digest(wl.image)
        if digest:
            ctx.info(f"Image SHA: {digest[:20]}...")

        ctx.step(f"Comparing {version} with latest {LATEST_CONTROLLER_VERSION}...")
        if version == LATEST_CONTROLLER_VERSION:
            ctx.passed(f"Running latest stable version {LATEST_CONTROLLER_VERSION} ✓")
        elif version == UNKNOWN:
            ctx.warn("Could not determine version from image tag — manual verification required")
        else:
            ctx.fail(f"Outdated version {version} (latest: {LATEST_CONTROLLER_VERSION})")
            argv = upgrade_command(ctx.namespace)
            ctx.info(f"Upgrade command: {' '.join(argv)}")
            ctx.register_fix(
                "upgrade-controller", FixSeverity.CRITICAL,
                f"Upgrade ingress-nginx controller from {version} to {LATEST_CONTROLLER_VERSION}",
                " ".join(argv),
                lambda: run_cmd(*argv),
            )

    def _helm(self, ctx: AuditContext) -> None:
        ctx.section("Helm Chart Information")
        ctx.step(f"Querying Helm releases in namespace {ctx.namespace}...")
        try:
            raw = json.loads(capture("helm", "list", "-n", ctx.namespace, "-o", "json") or "[]")
        except (CommandError, ValueError) as e:
            logger.debug("helm list failed: %s", e)
            ctx.warn("Could not query Helm releases — not installed via Helm or Helm not available")
            return
        releases = [r for r in decode_helm_releases(raw) if r.name == HELM_RELEASE]
        if not releases:
            ctx.info(f"No Helm release named '{HELM_RELEASE}' in namespace {ctx.namespace}")
            return
        for r in releases:
            ctx.info(f"Helm chart:    {r.chart}")
            ctx.info(f"Status:        {r.status}")
            ctx.info(f"Revision:      {r.revision}")
            cv = chart_version(r.chart)
            if cv == LATEST_CHART_VERSION:
                ctx.passed(f"Running latest Helm chart version {LATEST_CHART_VERSION}")
            else:
                ctx.warn(f"Chart version {cv} may be outdated (latest: {LATEST_CHART_VERSION})")

    def _update_config(self, ctx: AuditContext, wl: ControllerWorkload) -> None:
        ctx.section("Update Configuration")
        ctx.info(f"Image pull policy: {wl.image_pull_policy}")
        if wl.kind is WorkloadKind.DEPLOYMENT:
            ctx.info(f"Update strategy: {wl.update_strategy} "
                     f"(maxSurge: {wl.max_surge}, maxUnavailable: {wl.max_unavailable})")
        else:
            ctx.info(f"Update strategy: {wl.update_strategy}")

    def _lifecycle(self, ctx: AuditContext) -> None:
        ctx.section("Project Lifecycle Status")
        ctx.warn("⚠️  IMPORTANT: Ingress-NGINX community project is retiring in March 2026")
        ctx.info("Impact: No security updates, bug fixes, or support after March 2026")
        ctx.info("Action required: Plan migration to Gateway API or alternative controller")
        ctx.writeln("\n  Recommended alternatives:")
        for i, alt in enumerate(ALTERNATIVES, 1):
            ctx.writeln(f"    {i}. {alt}")
