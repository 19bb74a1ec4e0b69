"""Typed views of the cluster objects the probes read.

Every record is decoded from a ``kubernetes.client`` model (or, for Helm, from
``helm list -o json``) once, at the boundary. Absent fields fall back to the
defaults declared here: empty strings for unset quantities, ``NOT_SET`` for
display-only settings, ``None`` where "unset" and "false" must stay distinct.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from .findings import ServiceExposure, WorkloadKind

NOT_SET = "not-set"


def or_default(value: Any) -> str:
    if value is None or value == "":
        return NOT_SET
    return str(value)


def _fmt_time(ts) -> str:
    if ts is None:
        return NOT_SET
    return ts.isoformat() if hasattr(ts, "isoformat") else str(ts)


class ControllerWorkload(BaseModel):
    kind: WorkloadKind
    name: str
    namespace: str
    image: str = ""
    container_name: str = ""
    ready: int = 0
    desired: int = 0
    image_pull_policy: str = NOT_SET
    update_strategy: str = NOT_SET
    max_surge: str = NOT_SET
    max_unavailable: str = NOT_SET
    args: List[str] = Field(default_factory=list)
    cpu_request: str = ""
    cpu_limit: str = ""
    memory_request: str = ""
    memory_limit: str = ""
    run_as_non_root: Optional[bool] = None
    run_as_user: Optional[int] = None
    privileged: bool = False

    @property
    def replicas(self) -> str:
        return f"{self.ready}/{self.desired}"

    @property
    def has_limits(self) -> bool:
        return bool(self.cpu_limit) and bool(self.memory_limit)

    def arg_value(self, flag: str) -> Optional[str]:
        prefix = f"{flag}="
        value = None
        for a in self.args:
            if a.startswith(prefix):
                value = a[len(prefix):]
        return value


def decode_workload(obj, kind: WorkloadKind) -> ControllerWorkload:
    meta = obj.metadata
    spec = obj.spec
    pod_spec = spec.template.spec if spec and spec.template else None
    containers = (pod_spec.containers or []) if pod_spec else []
    first = containers[0] if containers else None

    wl = ControllerWorkload(kind=kind, name=meta.name, namespace=meta.namespace or "")
    if first is not None:
        res = first.resources
        requests = (getattr(res, "requests", None) or {}) if res else {}
        limits = (getattr(res, "limits", None) or {}) if res else {}
        wl.image = first.image or ""
        wl.container_name = first.name or ""
        wl.image_pull_policy = or_default(first.image_pull_policy)
        wl.args = list(first.args or [])
        wl.cpu_request = str(requests.get("cpu", "") or "")
        wl.cpu_limit = str(limits.get("cpu", "") or "")
        wl.memory_request = str(requests.get("memory", "") or "")
        wl.memory_limit = str(limits.get("memory", "") or "")
    wl.privileged = any(
        bool(getattr(c.security_context, "privileged", False)) for c in containers if c.security_context
    )
    psc = pod_spec.security_context if pod_spec else None
    if psc is not None:
        wl.run_as_non_root = psc.run_as_non_root
        wl.run_as_user = psc.run_as_user

    status = obj.status
    if kind is WorkloadKind.DAEMONSET:
        wl.ready = (status.number_ready or 0) if status else 0
        wl.desired = (status.desired_number_scheduled or 0) if status else 0
        strategy = spec.update_strategy
        wl.update_strategy = or_default(strategy.type if strategy else None)
    else:
        wl.ready = (status.ready_replicas or 0) if status else 0
        wl.desired = spec.replicas if spec.replicas is not None else 1
        strategy = spec.strategy
        wl.update_strategy = or_default(strategy.type if strategy else None)
        rolling = strategy.rolling_update if strategy else None
        if rolling is not None:
            wl.max_surge = or_default(rolling.max_surge)
            wl.max_unavailable = or_default(rolling.max_unavailable)
    return wl


class ServicePort(BaseModel):
    name: str = ""
    port: int
    node_port: Optional[int] = None


class ServiceInfo(BaseModel):
    name: str
    namespace: str
    exposure: ServiceExposure = ServiceExposure.UNKNOWN
    cluster_ip: str = ""
    ports: List[ServicePort] = Field(default_factory=list)
    selector: Dict[str, str] = Field(default_factory=dict)
    external_ips: List[str] = Field(default_factory=list)
    load_balancer_ip: str = ""
    created: str = NOT_SET

    def node_port(self, port_name: Optional[str] = None) -> Optional[int]:
        for p in self.ports:
            if port_name is None or p.name == port_name:
                return p.node_port
        return None


def decode_service(svc) -> ServiceInfo:
    spec = svc.spec
    info = ServiceInfo(
        name=svc.metadata.name,
        namespace=svc.metadata.namespace or "",
        created=_fmt_time(svc.metadata.creation_timestamp),
    )
    if spec is None:
        return info
    info.exposure = ServiceExposure.parse(spec.type or "ClusterIP")
    info.cluster_ip = spec.cluster_ip or ""
    info.ports = [ServicePort(name=p.name or "", port=p.port, node_port=p.node_port) for p in (spec.ports or [])]
    info.selector = dict(spec.selector or {})
    # renamed from external_i_ps in newer client releases
    info.external_ips = list(getattr(spec, "external_ips", None) or getattr(spec, "external_i_ps", None) or [])
    lb = svc.status.load_balancer if svc.status else None
    for ing in ((lb.ingress or []) if lb else []):
        info.load_balancer_ip = ing.ip or ing.hostname or ""
        break
    return info


class IngressInfo(BaseModel):
    name: str
    namespace: str
    ingress_class: str = ""
    annotations: Dict[str, str] = Field(default_factory=dict)
    backend_services: List[str] = Field(default_factory=list)
    has_tls: bool = False

    @property
    def ref(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_nginx(self) -> bool:
        return self.ingress_class == "nginx" or self.annotations.get("kubernetes.io/ingress.class") == "nginx"

    @property
    def snippet_annotations(self) -> List[str]:
        return sorted(k for k in self.annotations if "snippet" in k)


def decode_ingress(ing) -> IngressInfo:
    spec = ing.spec
    info = IngressInfo(
        name=ing.metadata.name,
        namespace=ing.metadata.namespace or "",
        annotations=dict(ing.metadata.annotations or {}),
    )
    if spec is None:
        return info
    info.ingress_class = spec.ingress_class_name or ""
    info.has_tls = bool(spec.tls)
    for rule in (spec.rules or []):
        http = rule.http
        for path in ((http.paths or []) if http else []):
            backend = path.backend
            if backend is not None and backend.service is not None:
                info.backend_services.append(backend.service.name or "")
    return info


class WebhookInfo(BaseModel):
    name: str
    service_name: str = NOT_SET
    service_namespace: str = NOT_SET
    service_port: str = NOT_SET
    failure_policy: str = NOT_SET
    has_webhooks: bool = False


def decode_webhook_configuration(cfg) -> WebhookInfo:
    info = WebhookInfo(name=cfg.metadata.name)
    hooks = cfg.webhooks or []
    if not hooks:
        return info
    wh = hooks[0]
    info.has_webhooks = True
    info.failure_policy = or_default(wh.failure_policy)
    svc = wh.client_config.service if wh.client_config else None
    if svc is not None:
        info.service_name = or_default(svc.name)
        info.service_namespace = or_default(svc.namespace)
        info.service_port = or_default(svc.port)
    return info


class HelmRelease(BaseModel):
    name: str
    chart: str = ""
    status: str = NOT_SET
    revision: str = NOT_SET


def decode_helm_releases(raw: List[Dict[str, Any]]) -> List[HelmRelease]:
    out: List[HelmRelease] = []
    for r in raw or []:
        if not isinstance(r, dict) or "name" not in r:
            continue
        out.append(HelmRelease(
            name=str(r["name"]),
            chart=str(r.get("chart", "") or ""),
            status=or_default(r.get("status")),
            revision=or_default(r.get("revision")),
        ))
    return out


class NodeInfo(BaseModel):
    name: str
    ready: bool = False
    kubelet_version: str = NOT_SET
    address: str = NOT_SET


def decode_node(node) -> NodeInfo:
    status = node.status
    info = NodeInfo(name=node.metadata.name)
    if status is None:
        return info
    info.ready = any(c.type == "Ready" and c.status == "True" for c in (status.conditions or []))
    if status.node_info is not None:
        info.kubelet_version = or_default(status.node_info.kubelet_version)
    for a in (status.addresses or []):
        info.address = a.address
        break
    return info


class PodInfo(BaseModel):
    name: str
    phase: str = NOT_SET
    ready: bool = False
    restarts: int = 0


def decode_pod(pod) -> PodInfo:
    status = pod.status
    statuses = (status.container_statuses or []) if status else []
    phase = (status.phase if status else None) or NOT_SET
    return PodInfo(
        name=pod.metadata.name,
        phase=phase,
        ready=phase == "Running" and bool(statuses) and all(cs.ready for cs in statuses),
        restarts=sum(cs.restart_count or 0 for cs in statuses),
    )
