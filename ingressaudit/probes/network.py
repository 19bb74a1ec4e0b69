from kubernetes.client import ApiException
from .base import Probe
from ..engine import context as facts
from ..engine.context import AuditContext
from ..utils import kube
from ..utils.findings import ServiceExposure

PUBLIC_EXPOSURES = (ServiceExposure.LOAD_BALANCER, ServiceExposure.NODE_PORT)


class NetworkProbe(Probe):
    name = "network"
    title = "PHASE 4 — NETWORK SECURITY AUDIT"

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        self._controller_service(ctx)
        self._network_policies(ctx)
        self._external_services(ctx)

    def _controller_service(self, ctx: AuditContext) -> None:
        ctx.section("Controller Service Exposure")
        ctx.step("Fetching controller service type...")
        try:
            svc = kube.read_service(self.clients, ctx.controller_name, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not query controller service ({e.reason})")
            return
        if svc is None:
            ctx.warn("Controller service not found")
            return

        ctx.info(f"Controller service type: {svc.exposure.value}")
        if svc.exposure is ServiceExposure.LOAD_BALANCER:
            ctx.info(f"External IP: {svc.load_balancer_ip or 'pending'}")
            ctx.passed("Controller properly exposed via LoadBalancer (expected for ingress)")
        elif svc.exposure is ServiceExposure.NODE_PORT:
            ctx.info(f"HTTP NodePort:  {svc.node_port('http')}")
            ctx.info(f"HTTPS NodePort: {svc.node_port('https')}")
            ctx.passed("Controller exposed via NodePort (common for bare-metal)")
        elif svc.exposure is ServiceExposure.CLUSTER_IP:
            ctx.warn("Controller is ClusterIP — confirm external access is handled elsewhere")

    def _network_policies(self, ctx: AuditContext) -> None:
        ctx.section("Network Policy Check")
        ctx.step("Checking for NetworkPolicies...")
        try:
            names = kube.list_network_policy_names(self.clients, ctx.namespace)
        except ApiException as e:
            ctx.facts[facts.NETWORK_POLICIES] = 0
            ctx.warn(f"Could not list NetworkPolicies ({e.reason})")
            return
        ctx.facts[facts.NETWORK_POLICIES] = len(names)
        if names:
            ctx.passed(f"Found {len(names)} NetworkPolicy resource(s)")
            for n in names:
                ctx.writeln(f"    {n}")
        else:
            ctx.warn("No NetworkPolicies found — consider adding for defense-in-depth")

    def _external_services(self, ctx: AuditContext) -> None:
        ctx.section("All External Services (Cluster-wide)")
        ctx.step("Scanning for LoadBalancer/NodePort services...")
        try:
            services = kube.list_all_services(self.clients)
        except ApiException as e:
            ctx.warn(f"Could not list cluster services ({e.reason})")
            return
        external = [s for s in services if s.exposure in PUBLIC_EXPOSURES]
        for s in external:
            ctx.info(f"  {s.namespace}/{s.name} ({s.exposure.value})")
        if not external:
            ctx.info("No LoadBalancer or NodePort services found")
