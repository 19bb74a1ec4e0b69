from kubernetes.client import ApiException
from .base import Probe
from ..engine.context import AuditContext
from ..utils import kube


class IngressProbe(Probe):
    name = "ingress"
    title = "PHASE 9 — INGRESS RESOURCES AUDIT"

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        ctx.section("Cluster-wide Ingress Resources")
        ctx.step("Listing all Ingress resources...")
        try:
            ingresses = kube.list_all_ingresses(self.clients)
        except ApiException as e:
            ctx.warn(f"Could not list Ingress resources ({e.reason})")
            return
        ctx.info(f"Total Ingress resources: {len(ingresses)}")

        ctx.step("Counting NGINX-class Ingress resources...")
        nginx = [i for i in ingresses if i.is_nginx]
        with_snippets = [i.ref for i in nginx if i.snippet_annotations]
        with_tls = sum(1 for i in nginx if i.has_tls)
        ctx.info(f"NGINX Ingress resources: {len(nginx)}")
        if nginx:
            ctx.passed(f"Found {len(nginx)} Ingress resources using nginx class")

        ctx.section("Snippet Annotation Check")
        ctx.step("Scanning for snippet annotations...")
        if with_snippets:
            ctx.warn(f"Found {len(with_snippets)} Ingress resources using snippet annotations")
            ctx.info("Snippets can be a security risk — review carefully")
            for ref in with_snippets:
                ctx.writeln(f"    - {ref}")
        else:
            ctx.passed("No Ingress resources using snippet annotations")

        ctx.section("TLS Configuration")
        ctx.step("Checking TLS coverage...")
        ctx.info(f"Ingress with TLS: {with_tls}/{len(nginx)}")
        if nginx and with_tls < len(nginx):
            ctx.warn(f"{len(nginx) - with_tls} Ingress resources without TLS configured for {ctx.domain}")
        elif nginx:
            ctx.passed("All Ingress resources configured with TLS")
