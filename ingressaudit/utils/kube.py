import logging
import time
from typing import Any, Dict, List, Optional
from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError
from ..errors import AuditAborted
from .findings import WorkloadKind
from ..config import ROLLOUT_POLL_SECONDS
from .resources import (
    ControllerWorkload, IngressInfo, NodeInfo, PodInfo, ServiceInfo, WebhookInfo,
    decode_ingress, decode_node, decode_pod, decode_service, decode_webhook_configuration,
    decode_workload,
)

logger = logging.getLogger(__name__)


def load_clients(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> Dict[str, Any]:
    try:
        config.load_kube_config(config_file=kubeconfig, context=context)
        active = context or _active_context(kubeconfig)
    except (ConfigException, OSError):
        config.load_incluster_config()
        active = "in-cluster"
    return {
        "core": client.CoreV1Api(),
        "apps": client.AppsV1Api(),
        "networking": client.NetworkingV1Api(),
        "admission": client.AdmissionregistrationV1Api(),
        "auth": client.AuthorizationV1Api(),
        "version": client.VersionApi(),
        "context": active,
    }


def _active_context(kubeconfig: Optional[str]) -> str:
    try:
        _, active = config.list_kube_config_contexts(config_file=kubeconfig)
    except (ConfigException, OSError):
        return "unknown"
    return (active or {}).get("name", "unknown")


def is_not_found(e: ApiException) -> bool:
    return e.status == 404


# ── cluster ────────────────────────────────────────────────

def server_version(clients) -> str:
    return clients["version"].get_code().git_version


def api_server_host() -> str:
    return client.Configuration.get_default_copy().host or "unknown"


def current_context(clients) -> str:
    """Name of the kubeconfig context the clients were loaded from."""
    return clients.get("context", "unknown")


def list_nodes(clients) -> List[NodeInfo]:
    return [decode_node(n) for n in (clients["core"].list_node().items or [])]


def list_namespace_names(clients) -> List[str]:
    return [ns.metadata.name for ns in (clients["core"].list_namespace().items or [])]


def read_namespace(clients, namespace: str):
    return clients["core"].read_namespace(namespace)


def can_i(clients, verb: str, resource: str, group: str = "") -> bool:
    # no namespace in the review means "in every namespace" for namespaced resources
    review = client.V1SelfSubjectAccessReview(
        spec=client.V1SelfSubjectAccessReviewSpec(
            resource_attributes=client.V1ResourceAttributes(
                verb=verb, resource=resource, group=group,
            )
        )
    )
    resp = clients["auth"].create_self_subject_access_review(review)
    return bool(resp.status and resp.status.allowed)


# ── controller workload ─────────────────────────────────────

def read_workload(clients, kind: WorkloadKind, name: str, namespace: str) -> Optional[ControllerWorkload]:
    """Return the decoded workload, or None when it does not exist."""
    apps = clients["apps"]
    try:
        if kind is WorkloadKind.DAEMONSET:
            obj = apps.read_namespaced_daemon_set(name, namespace)
        else:
            obj = apps.read_namespaced_deployment(name, namespace)
    except ApiException as e:
        if is_not_found(e):
            return None
        raise
    return decode_workload(obj, kind)


def find_controller(clients, name: str, namespace: str) -> Optional[ControllerWorkload]:
    for kind in (WorkloadKind.DAEMONSET, WorkloadKind.DEPLOYMENT):
        wl = read_workload(clients, kind, name, namespace)
        if wl is not None:
            return wl
    return None


def controller_exists(clients, name: str, namespace: str) -> bool:
    try:
        return find_controller(clients, name, namespace) is not None
    except ApiException as e:
        logger.warning("cannot look up %s in %s: %s", name, namespace, e.reason)
        return False
    except HTTPError as e:
        raise AuditAborted(f"cannot reach the Kubernetes API server: {e}") from e


def list_workload_names(clients, namespace: str) -> List[str]:
    apps = clients["apps"]
    names = [f"deployment.apps/{d.metadata.name}" for d in (apps.list_namespaced_deployment(namespace).items or [])]
    names += [f"daemonset.apps/{d.metadata.name}" for d in (apps.list_namespaced_daemon_set(namespace).items or [])]
    return names


def patch_container_resources(clients, kind: WorkloadKind, name: str, namespace: str, container: str,
                              limits: Dict[str, str], requests: Dict[str, str]) -> None:
    body = {"spec": {"template": {"spec": {"containers": [
        {"name": container, "resources": {"limits": limits, "requests": requests}}
    ]}}}}
    if kind is WorkloadKind.DAEMONSET:
        clients["apps"].patch_namespaced_daemon_set(name, namespace, body)
    else:
        clients["apps"].patch_namespaced_deployment(name, namespace, body)


def _rollout_settled(obj, kind: WorkloadKind) -> bool:
    status = obj.status
    if status is None:
        return False
    generation = obj.metadata.generation or 0
    if (status.observed_generation or 0) < generation:
        return False
    if kind is WorkloadKind.DAEMONSET:
        desired = status.desired_number_scheduled or 0
        return (status.updated_number_scheduled or 0) >= desired and (status.number_available or 0) >= desired
    desired = obj.spec.replicas if obj.spec.replicas is not None else 1
    return ((status.updated_replicas or 0) >= desired
            and (status.available_replicas or 0) >= desired
            and (status.replicas or 0) <= desired)


def wait_for_rollout(clients, kind: WorkloadKind, name: str, namespace: str,
                     timeout: float, poll: float = ROLLOUT_POLL_SECONDS, sleep=time.sleep, clock=time.monotonic) -> bool:
    """Poll the workload until its rollout has settled; False on timeout or API error."""
    deadline = clock() + timeout
    apps = clients["apps"]
    while True:
        try:
            if kind is WorkloadKind.DAEMONSET:
                obj = apps.read_namespaced_daemon_set_status(name, namespace)
            else:
                obj = apps.read_namespaced_deployment_status(name, namespace)
        except ApiException as e:
            logger.warning("rollout status of %s/%s unavailable: %s", kind.resource, name, e.reason)
            return False
        if _rollout_settled(obj, kind):
            return True
        if clock() >= deadline:
            logger.info("rollout of %s/%s did not settle within %ss", kind.resource, name, timeout)
            return False
        sleep(poll)


# ── services / networking ───────────────────────────────────

def read_service(clients, name: str, namespace: str) -> Optional[ServiceInfo]:
    try:
        return decode_service(clients["core"].read_namespaced_service(name, namespace))
    except ApiException as e:
        if is_not_found(e):
            return None
        raise


def list_all_services(clients) -> List[ServiceInfo]:
    return [decode_service(s) for s in (clients["core"].list_service_for_all_namespaces().items or [])]


def patch_service_type(clients, name: str, namespace: str, svc_type: str) -> None:
    clients["core"].patch_namespaced_service(name, namespace, {"spec": {"type": svc_type}})


def endpoint_ips(clients, name: str, namespace: str) -> List[str]:
    try:
        ep = clients["core"].read_namespaced_endpoints(name, namespace)
    except ApiException as e:
        if is_not_found(e):
            return []
        raise
    ips: List[str] = []
    for subset in (ep.subsets or []):
        ips.extend(a.ip for a in (subset.addresses or []))
    return ips


def list_all_ingresses(clients) -> List[IngressInfo]:
    return [decode_ingress(i) for i in (clients["networking"].list_ingress_for_all_namespaces().items or [])]


def delete_ingress(clients, name: str, namespace: str) -> None:
    clients["networking"].delete_namespaced_ingress(name, namespace)


def list_network_policy_names(clients, namespace: str) -> List[str]:
    items = clients["networking"].list_namespaced_network_policy(namespace).items or []
    return [p.metadata.name for p in items]


def list_webhook_configurations(clients) -> List[WebhookInfo]:
    items = clients["admission"].list_validating_webhook_configuration().items or []
    return [decode_webhook_configuration(c) for c in items]


# ── config / secrets / pods ─────────────────────────────────

def read_config_map_data(clients, name: str, namespace: str) -> Optional[Dict[str, str]]:
    try:
        cm = clients["core"].read_namespaced_config_map(name, namespace)
    except ApiException as e:
        if is_not_found(e):
            return None
        raise
    return dict(cm.data or {})


def patch_config_map_data(clients, name: str, namespace: str, data: Dict[str, str]) -> None:
    clients["core"].patch_namespaced_config_map(name, namespace, {"data": data})


def read_secret_data(clients, name: str, namespace: str) -> Optional[Dict[str, str]]:
    try:
        secret = clients["core"].read_namespaced_secret(name, namespace)
    except ApiException as e:
        if is_not_found(e):
            return None
        raise
    return dict(secret.data or {})


def list_pods(clients, namespace: str, label_selector: Optional[str] = None) -> List[PodInfo]:
    kwargs = {"label_selector": label_selector} if label_selector else {}
    return [decode_pod(p) for p in (clients["core"].list_namespaced_pod(namespace, **kwargs).items or [])]


def count_namespace_resources(clients, namespace: str) -> Dict[str, int]:
    core = clients["core"]
    return {
        "pods": len(core.list_namespaced_pod(namespace).items or []),
        "services": len(core.list_namespaced_service(namespace).items or []),
        "configmaps": len(core.list_namespaced_config_map(namespace).items or []),
    }
