import logging
from typing import Any, Dict, Sequence
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError
from .base import Probe
from ..config import REQUIRED_TOOLS
from ..engine import context as facts
from ..engine.context import AuditContext
from ..errors import AuditAborted, CommandError
from ..utils import kube
from ..utils.resources import NOT_SET
from ..utils.shell import capture, cmd_exists

logger = logging.getLogger(__name__)

RBAC_CHECKS = [
    ("get", "pods", "", True),
    ("get", "services", "", True),
    ("get", "validatingwebhookconfigurations", "admissionregistration.k8s.io", False),
    ("get", "networkpolicies", "networking.k8s.io", True),
]


def tool_version(name: str) -> str:
    try:
        if name == "helm":
            return capture("helm", "version", "--short").split("+", 1)[0]
        return capture(name, "--version").splitlines()[0]
    except (CommandError, IndexError):
        return "unknown"


class PreflightProbe(Probe):
    name = "preflight"
    title = "PHASE 1 — PRE-FLIGHT CHECKS"

    def __init__(self, clients: Dict[str, Any], required_tools: Sequence[str] = REQUIRED_TOOLS):
        super().__init__(clients)
        self.required_tools = tuple(required_tools)

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        self._tools(ctx)
        self._cluster(ctx)
        self._namespace(ctx)
        self._rbac(ctx)
        ctx.info("Pre-flight checks completed ✓")

    def _tools(self, ctx: AuditContext) -> None:
        ctx.section("Required Tools Validation")
        for tool in self.required_tools:
            ctx.step(f"Checking {tool}...")
            if not cmd_exists(tool):
                ctx.fail(f"{tool} is not installed — please install it and retry")
                raise AuditAborted(f"required tool '{tool}' is not installed")
            ctx.passed(f"{tool} is installed ({tool_version(tool)})")

    def _cluster(self, ctx: AuditContext) -> None:
        ctx.section("Kubernetes Cluster Connectivity")
        ctx.step("Contacting the API server...")
        try:
            version = kube.server_version(self.clients)
        except (ApiException, HTTPError, OSError) as e:
            logger.debug("version endpoint failed: %s", e)
            ctx.fail("Cannot reach Kubernetes API server — check kubeconfig")
            raise AuditAborted("cannot reach the Kubernetes API server") from e
        ctx.passed("Kubernetes cluster is reachable")

        ctx.facts[facts.CLUSTER_VERSION] = version
        ctx.info(f"Cluster version: {version}")
        ctx.facts[facts.API_SERVER] = kube.api_server_host()
        ctx.info(f"API Server: {ctx.facts[facts.API_SERVER]}")
        ctx.facts[facts.CURRENT_CONTEXT] = kube.current_context(self.clients)
        ctx.info(f"Context: {ctx.facts[facts.CURRENT_CONTEXT]}")

        ctx.step("Counting cluster nodes...")
        try:
            nodes = kube.list_nodes(self.clients)
        except ApiException as e:
            ctx.warn(f"Cannot list nodes ({e.reason})")
            return
        ready = sum(1 for n in nodes if n.ready)
        ctx.info(f"Cluster nodes: {ready}/{len(nodes)} ready")
        if nodes:
            ctx.writeln("\n  Node details:")
            for n in nodes:
                status = "Ready" if n.ready else "NotReady"
                ctx.writeln(f"    {n.name:<30} {status:<10} {n.kubelet_version}")

    def _namespace(self, ctx: AuditContext) -> None:
        ctx.section("Namespace Validation")
        ctx.step(f"Looking up namespace {ctx.namespace}...")
        try:
            ns = kube.read_namespace(self.clients, ctx.namespace)
        except ApiException as e:
            ctx.fail(f"Namespace '{ctx.namespace}' not found")
            try:
                ctx.info(f"Available: {' '.join(kube.list_namespace_names(self.clients))}")
            except ApiException as list_err:
                logger.debug("cannot list namespaces: %s", list_err.reason)
            raise AuditAborted(f"namespace '{ctx.namespace}' not found") from e
        ctx.passed(f"Namespace '{ctx.namespace}' exists")
        phase = ns.status.phase if ns.status else None
        created = ns.metadata.creation_timestamp
        ctx.info(f"Status: {phase or NOT_SET}")
        ctx.info(f"Created: {created.isoformat() if created else NOT_SET}")

        ctx.step("Counting namespace resources...")
        try:
            counts = kube.count_namespace_resources(self.clients, ctx.namespace)
            pods = kube.list_pods(self.clients, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Cannot count namespace resources ({e.reason})")
            return
        ctx.info(f"Resources: {counts['pods']} pods, {counts['services']} services, {counts['configmaps']} configmaps")
        if pods:
            ctx.writeln("\n  Pod summary:")
            for p in pods:
                ctx.writeln(f"    {p.name:<45} {p.phase:<10} {p.restarts}")

    def _rbac(self, ctx: AuditContext) -> None:
        ctx.section("RBAC Permissions Check")
        for verb, resource, group, cluster_wide in RBAC_CHECKS:
            scope = " --all-namespaces" if cluster_wide else ""
            ctx.step(f"Testing 'can-i {verb} {resource}{scope}'...")
            try:
                allowed = kube.can_i(self.clients, verb, resource, group)
            except ApiException as e:
                logger.debug("access review for %s %s failed: %s", verb, resource, e.reason)
                allowed = False
            if allowed:
                ctx.passed(f"Can {verb} {resource}")
            else:
                ctx.warn(f"Limited permission: {verb} {resource}")
