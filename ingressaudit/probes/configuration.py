from kubernetes.client import ApiException
from .base import Probe
from ..engine import context as facts
from ..engine.context import AuditContext
from ..utils import kube
from ..utils.findings import FixSeverity, WorkloadKind
from ..utils.resources import NOT_SET, or_default

DEFAULT_LIMITS = {"cpu": "200m", "memory": "256Mi"}
DEFAULT_REQUESTS = {"cpu": "100m", "memory": "128Mi"}
SNIPPETS_PATCH = '{"data":{"allow-snippet-annotations":"false"}}'


def _quantities(q) -> str:
    return ",".join(f"{k}={v}" for k, v in q.items())


class ConfigurationProbe(Probe):
    name = "configuration"
    title = "PHASE 5 — CONFIGURATION AUDIT"

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        self._config_map(ctx)
        self._resource_limits(ctx)

    def _config_map(self, ctx: AuditContext) -> None:
        ctx.section("ConfigMap Settings")
        ctx.step(f"Fetching {ctx.controller_name} configmap...")
        ctx.facts[facts.ALLOW_SNIPPETS] = NOT_SET
        try:
            data = kube.read_config_map_data(self.clients, ctx.controller_name, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not read ConfigMap '{ctx.controller_name}' ({e.reason})")
            return
        if data is None:
            ctx.warn(f"ConfigMap '{ctx.controller_name}' not found")
            return

        ctx.step("Checking allow-snippet-annotations...")
        allow = or_default(data.get("allow-snippet-annotations"))
        ctx.facts[facts.ALLOW_SNIPPETS] = allow
        if allow == "true":
            ctx.fail("SECURITY RISK: allow-snippet-annotations is enabled")
            ctx.info("REMEDIATION: Disable snippet annotations unless absolutely required")
            ns, name, clients = ctx.namespace, ctx.controller_name, self.clients
            ctx.register_fix(
                "snippet-annotations", FixSeverity.CRITICAL,
                "Disable allow-snippet-annotations in ingress-nginx ConfigMap",
                f"kubectl patch cm {name} -n {ns} -p '{SNIPPETS_PATCH}'",
                lambda: kube.patch_config_map_data(clients, name, ns, {"allow-snippet-annotations": "false"}),
            )
        else:
            ctx.passed("Snippet annotations disabled (secure default)")

        ctx.step("Checking SSL protocols...")
        ssl_protocols = or_default(data.get("ssl-protocols"))
        ctx.info(f"SSL protocols: {ssl_protocols}")
        if "TLSv1 " in ssl_protocols + " ":
            ctx.warn("TLSv1 is enabled — consider disabling for better security")

        ctx.step("Checking custom HTTP errors...")
        ctx.info(f"Custom HTTP errors: {or_default(data.get('custom-http-errors'))}")

    def _resource_limits(self, ctx: AuditContext) -> None:
        ctx.section("Resource Limits")
        kind = ctx.workload_kind
        if kind is WorkloadKind.UNKNOWN:
            ctx.info("Controller workload not discovered — resource limits not checked")
            return
        ctx.step("Fetching resource limits...")
        try:
            wl = kube.read_workload(self.clients, kind, ctx.controller_name, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not read controller workload ({e.reason})")
            return
        if wl is None:
            ctx.warn(f"{kind.value} '{ctx.controller_name}' disappeared during the audit")
            return

        ctx.info(f"CPU:    request={or_default(wl.cpu_request)}  limit={or_default(wl.cpu_limit)}")
        ctx.info(f"Memory: request={or_default(wl.memory_request)}  limit={or_default(wl.memory_limit)}")
        if wl.has_limits:
            ctx.passed("Resource limits configured")
            return

        ctx.warn("Resource limits not set — may impact cluster stability")
        ns, name, container, clients = ctx.namespace, ctx.controller_name, wl.container_name, self.clients
        limits, requests = dict(DEFAULT_LIMITS), dict(DEFAULT_REQUESTS)
        ctx.register_fix(
            "resource-limits", FixSeverity.WARNING,
            f"Set default resource limits on {name}",
            f"kubectl set resources {kind.resource} {name} -n {ns} -c {container} "
            f"--limits={_quantities(limits)} --requests={_quantities(requests)}",
            lambda: kube.patch_container_resources(clients, kind, name, ns, container, limits, requests),
        )
