from types import SimpleNamespace
import pytest
from kubernetes import client
from ingressaudit.utils.findings import ServiceExposure, WorkloadKind
from ingressaudit.utils.resources import (
    NOT_SET, decode_helm_releases, decode_ingress, decode_pod, decode_service, decode_workload,
)


def test_decode_deployment(make_deployment):
    wl = decode_workload(
        make_deployment(limits={"cpu": "200m", "memory": "256Mi"}, requests={"cpu": "100m"},
                        args=["--default-ssl-certificate=a/b", "--default-ssl-certificate=web/tls"]),
        WorkloadKind.DEPLOYMENT,
    )
    assert wl.kind is WorkloadKind.DEPLOYMENT
    assert wl.container_name == "controller"
    assert wl.replicas == "2/2"
    assert wl.update_strategy == "RollingUpdate"
    assert (wl.max_surge, wl.max_unavailable) == ("25%", "1")
    assert wl.has_limits
    assert wl.memory_request == ""
    assert wl.arg_value("--default-ssl-certificate") == "web/tls"
    assert wl.arg_value("--missing") is None
    assert wl.run_as_non_root is None


def test_decode_deployment_without_resources(make_deployment):
    wl = decode_workload(make_deployment(), WorkloadKind.DEPLOYMENT)
    assert not wl.has_limits
    assert wl.cpu_limit == ""


def test_decode_load_balancer_service(make_service):
    svc = decode_service(make_service("LoadBalancer", lb_ip="203.0.113.7", external_ips=["198.51.100.1"]))
    assert svc.exposure is ServiceExposure.LOAD_BALANCER
    assert svc.load_balancer_ip == "203.0.113.7"
    assert svc.external_ips == ["198.51.100.1"]
    assert svc.ports[0].port == 443


def test_decode_node_port_service(make_service):
    svc = decode_service(make_service("NodePort", node_port=30443))
    assert svc.exposure is ServiceExposure.NODE_PORT
    assert svc.node_port() == 30443
    assert svc.load_balancer_ip == ""
    assert svc.created == NOT_SET


def test_decode_ingress():
    backend = client.V1IngressBackend(service=client.V1IngressServiceBackend(
        name="ingress-nginx-controller-admission", port=client.V1ServiceBackendPort(number=443)))
    ing = client.V1Ingress(
        metadata=client.V1ObjectMeta(
            name="webhook", namespace="default",
            annotations={"nginx.ingress.kubernetes.io/configuration-snippet": "more_set_headers x"},
        ),
        spec=client.V1IngressSpec(
            ingress_class_name="nginx",
            rules=[client.V1IngressRule(http=client.V1HTTPIngressRuleValue(paths=[
                client.V1HTTPIngressPath(path="/", path_type="Prefix", backend=backend),
            ]))],
        ),
    )
    info = decode_ingress(ing)
    assert info.ref == "default/webhook"
    assert info.is_nginx
    assert not info.has_tls
    assert info.backend_services == ["ingress-nginx-controller-admission"]
    assert info.snippet_annotations == ["nginx.ingress.kubernetes.io/configuration-snippet"]


def test_decode_pod_readiness():
    def pod(phase, *ready):
        statuses = [
            client.V1ContainerStatus(name=f"c{i}", image="img", image_id="id", ready=r, restart_count=i)
            for i, r in enumerate(ready)
        ]
        return client.V1Pod(metadata=client.V1ObjectMeta(name="p"),
                            status=client.V1PodStatus(phase=phase, container_statuses=statuses))

    assert decode_pod(pod("Running", True, True)).ready
    assert decode_pod(pod("Running", True, True)).restarts == 1
    assert not decode_pod(pod("Running", True, False)).ready
    assert not decode_pod(pod("Pending", True)).ready
    assert not decode_pod(pod("Running")).ready


def test_decode_helm_releases_skips_junk():
    raw = [
        {"name": "ingress-nginx", "chart": "ingress-nginx-4.14.3", "status": "deployed", "revision": "7"},
        {"chart": "nameless"},
        "garbage",
    ]
    releases = decode_helm_releases(raw)
    assert [r.name for r in releases] == ["ingress-nginx"]
    assert releases[0].revision == "7"


@pytest.mark.parametrize("field", ["external_ips", "external_i_ps"])
def test_decode_service_external_ips_field_name(field):
    spec = SimpleNamespace(type="LoadBalancer", cluster_ip="10.96.0.1", ports=[], selector=None,
                           **{field: ["198.51.100.9"]})
    svc = SimpleNamespace(metadata=client.V1ObjectMeta(name="edge", namespace="ingress-nginx"),
                          spec=spec, status=None)
    assert decode_service(svc).external_ips == ["198.51.100.9"]


@pytest.mark.parametrize("tls,want", [
    (None, False),
    ([], False),
    ([client.V1IngressTLS(hosts=["app.example.org"], secret_name="app-tls")], True),
])
def test_decode_ingress_tls(tls, want):
    ing = client.V1Ingress(metadata=client.V1ObjectMeta(name="app", namespace="web"),
                           spec=client.V1IngressSpec(ingress_class_name="nginx", tls=tls))
    assert decode_ingress(ing).has_tls is want
