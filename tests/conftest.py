import io
from unittest.mock import MagicMock
import pytest
from kubernetes import client
from kubernetes.client import ApiException
from ingressaudit.engine.context import AuditContext

# older clients generate the field as external_i_ps
EXTERNAL_IPS_FIELD = "external_ips" if "external_ips" in (
    getattr(client.V1ServiceSpec, "model_fields", None) or getattr(client.V1ServiceSpec, "attribute_map", {})
) else "external_i_ps"


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def ctx(stream):
    return AuditContext(
        namespace="ingress-nginx",
        domain="example.org",
        email="ops@example.org",
        stream=stream,
    )


@pytest.fixture
def clients():
    return {
        "core": MagicMock(name="CoreV1Api"),
        "apps": MagicMock(name="AppsV1Api"),
        "networking": MagicMock(name="NetworkingV1Api"),
        "admission": MagicMock(name="AdmissionregistrationV1Api"),
        "auth": MagicMock(name="AuthorizationV1Api"),
        "version": MagicMock(name="VersionApi"),
    }


@pytest.fixture
def not_found():
    return ApiException(status=404, reason="Not Found")


@pytest.fixture
def make_deployment():
    def build(image="registry.k8s.io/ingress-nginx/controller:v1.14.3", name="ingress-nginx-controller",
              namespace="ingress-nginx", limits=None, requests=None, args=None, run_as_non_root=None):
        container = client.V1Container(
            name="controller",
            image=image,
            image_pull_policy="IfNotPresent",
            args=args or ["/nginx-ingress-controller", "--election-id=ingress-nginx-leader"],
            resources=client.V1ResourceRequirements(limits=limits, requests=requests),
        )
        return client.V1Deployment(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, generation=3),
            spec=client.V1DeploymentSpec(
                replicas=2,
                selector=client.V1LabelSelector(match_labels={"app.kubernetes.io/name": "ingress-nginx"}),
                template=client.V1PodTemplateSpec(spec=client.V1PodSpec(
                    containers=[container],
                    security_context=client.V1PodSecurityContext(run_as_non_root=run_as_non_root),
                )),
                strategy=client.V1DeploymentStrategy(
                    type="RollingUpdate",
                    rolling_update=client.V1RollingUpdateDeployment(max_surge="25%", max_unavailable=1),
                ),
            ),
            status=client.V1DeploymentStatus(ready_replicas=2, replicas=2, observed_generation=3),
        )
    return build


@pytest.fixture
def make_service():
    def build(svc_type="ClusterIP", name="ingress-nginx-controller-admission", namespace="ingress-nginx",
              lb_ip=None, external_ips=None, node_port=None):
        status = None
        if lb_ip:
            status = client.V1ServiceStatus(load_balancer=client.V1LoadBalancerStatus(
                ingress=[client.V1LoadBalancerIngress(ip=lb_ip)]))
        return client.V1Service(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            spec=client.V1ServiceSpec(
                type=svc_type,
                cluster_ip="10.96.0.12",
                ports=[client.V1ServicePort(name="https-webhook", port=443, node_port=node_port)],
                selector={"app.kubernetes.io/component": "controller"},
                **{EXTERNAL_IPS_FIELD: external_ips},
            ),
            status=status,
        )
    return build
