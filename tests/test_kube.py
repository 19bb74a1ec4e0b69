from types import SimpleNamespace
from unittest.mock import MagicMock
import pytest
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError
from ingressaudit.errors import AuditAborted
from ingressaudit.utils import kube
from ingressaudit.utils.findings import WorkloadKind


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def _deployment(generation=2, observed=2, replicas=2, updated=2, available=2, current=2):
    return SimpleNamespace(
        metadata=SimpleNamespace(generation=generation),
        spec=SimpleNamespace(replicas=replicas),
        status=SimpleNamespace(observed_generation=observed, updated_replicas=updated,
                               available_replicas=available, replicas=current),
    )


def _daemonset(desired=3, updated=3, available=3):
    return SimpleNamespace(
        metadata=SimpleNamespace(generation=1),
        spec=SimpleNamespace(),
        status=SimpleNamespace(observed_generation=1, desired_number_scheduled=desired,
                               updated_number_scheduled=updated, number_available=available),
    )


# ── client loading ──────────────────────────────────────────

def test_load_clients_records_requested_context(monkeypatch):
    seen = {}

    def load(config_file=None, context=None):
        seen.update(config_file=config_file, context=context)

    monkeypatch.setattr(kube.config, "load_kube_config", load)
    monkeypatch.setattr(kube.config, "list_kube_config_contexts",
                        MagicMock(side_effect=AssertionError("context was given explicitly")))
    clients = kube.load_clients("/tmp/kc.yaml", "staging")
    assert seen == {"config_file": "/tmp/kc.yaml", "context": "staging"}
    assert kube.current_context(clients) == "staging"


def test_load_clients_reads_active_context_from_same_file(monkeypatch):
    lookup = MagicMock(return_value=([], {"name": "prod-east"}))
    monkeypatch.setattr(kube.config, "load_kube_config", lambda config_file=None, context=None: None)
    monkeypatch.setattr(kube.config, "list_kube_config_contexts", lookup)
    clients = kube.load_clients("/tmp/kc.yaml")
    lookup.assert_called_once_with(config_file="/tmp/kc.yaml")
    assert kube.current_context(clients) == "prod-east"


def test_load_clients_falls_back_to_in_cluster(monkeypatch):
    def missing(config_file=None, context=None):
        raise ConfigException("Invalid kube-config file. No configuration found.")

    incluster = MagicMock()
    monkeypatch.setattr(kube.config, "load_kube_config", missing)
    monkeypatch.setattr(kube.config, "load_incluster_config", incluster)
    clients = kube.load_clients()
    incluster.assert_called_once_with()
    assert kube.current_context(clients) == "in-cluster"


def test_current_context_defaults_to_unknown():
    assert kube.current_context({}) == "unknown"


# ── controller lookup ───────────────────────────────────────

def test_controller_exists_prefers_daemonset(clients, not_found, make_deployment):
    clients["apps"].read_namespaced_daemon_set.side_effect = not_found
    clients["apps"].read_namespaced_deployment.return_value = make_deployment()
    assert kube.controller_exists(clients, "ingress-nginx-controller", "ingress-nginx")
    clients["apps"].read_namespaced_daemon_set.assert_called_once_with("ingress-nginx-controller", "ingress-nginx")


def test_controller_missing(clients, not_found):
    clients["apps"].read_namespaced_daemon_set.side_effect = not_found
    clients["apps"].read_namespaced_deployment.side_effect = not_found
    assert not kube.controller_exists(clients, "ctrl", "edge")


def test_controller_lookup_forbidden_is_treated_as_absent(clients, caplog):
    clients["apps"].read_namespaced_daemon_set.side_effect = ApiException(status=403, reason="Forbidden")
    assert not kube.controller_exists(clients, "ctrl", "edge")
    assert "Forbidden" in caplog.text


def test_controller_lookup_connection_error_aborts(clients):
    clients["apps"].read_namespaced_daemon_set.side_effect = MaxRetryError(None, "/apis/apps/v1")
    with pytest.raises(AuditAborted):
        kube.controller_exists(clients, "ctrl", "edge")


def test_can_i(clients):
    clients["auth"].create_self_subject_access_review.return_value = SimpleNamespace(
        status=SimpleNamespace(allowed=True))
    assert kube.can_i(clients, "patch", "services")
    review = clients["auth"].create_self_subject_access_review.call_args.args[0]
    attrs = review.spec.resource_attributes
    assert (attrs.verb, attrs.resource, attrs.group) == ("patch", "services", "")
    assert attrs.namespace is None

    clients["auth"].create_self_subject_access_review.return_value = SimpleNamespace(status=None)
    assert not kube.can_i(clients, "delete", "ingresses", "networking.k8s.io")


# ── rollout wait ────────────────────────────────────────────

def test_rollout_settled_deployment():
    assert kube._rollout_settled(_deployment(), WorkloadKind.DEPLOYMENT)
    assert not kube._rollout_settled(_deployment(observed=1), WorkloadKind.DEPLOYMENT)
    assert not kube._rollout_settled(_deployment(updated=1), WorkloadKind.DEPLOYMENT)
    assert not kube._rollout_settled(_deployment(available=1), WorkloadKind.DEPLOYMENT)
    # old replicas still terminating
    assert not kube._rollout_settled(_deployment(current=3), WorkloadKind.DEPLOYMENT)
    assert kube._rollout_settled(_deployment(replicas=None, updated=1, available=1, current=1),
                                 WorkloadKind.DEPLOYMENT)


def test_rollout_settled_daemonset():
    assert kube._rollout_settled(_daemonset(), WorkloadKind.DAEMONSET)
    assert not kube._rollout_settled(_daemonset(updated=2), WorkloadKind.DAEMONSET)
    assert not kube._rollout_settled(_daemonset(available=2), WorkloadKind.DAEMONSET)
    assert not kube._rollout_settled(SimpleNamespace(status=None), WorkloadKind.DAEMONSET)


def test_wait_for_rollout_polls_until_settled(clients):
    clock = FakeClock()
    clients["apps"].read_namespaced_deployment_status.side_effect = [
        _deployment(updated=1), _deployment(available=1), _deployment(),
    ]
    assert kube.wait_for_rollout(clients, WorkloadKind.DEPLOYMENT, "ctrl", "edge",
                                 timeout=60, poll=5, sleep=clock.sleep, clock=clock)
    assert clients["apps"].read_namespaced_deployment_status.call_count == 3
    assert clock.now == 10


def test_wait_for_rollout_reads_daemonset_status(clients):
    clock = FakeClock()
    clients["apps"].read_namespaced_daemon_set_status.return_value = _daemonset()
    assert kube.wait_for_rollout(clients, WorkloadKind.DAEMONSET, "ctrl", "edge",
                                 timeout=60, sleep=clock.sleep, clock=clock)
    clients["apps"].read_namespaced_deployment_status.assert_not_called()


def test_wait_for_rollout_times_out(clients):
    clock = FakeClock()
    clients["apps"].read_namespaced_deployment_status.return_value = _deployment(available=0)
    assert not kube.wait_for_rollout(clients, WorkloadKind.DEPLOYMENT, "ctrl", "edge",
                                     timeout=12, poll=5, sleep=clock.sleep, clock=clock)
    assert clock.now == 15


def test_wait_for_rollout_stops_on_api_error(clients):
    clock = FakeClock()
    clients["apps"].read_namespaced_deployment_status.side_effect = ApiException(status=404, reason="Not Found")
    assert not kube.wait_for_rollout(clients, WorkloadKind.DEPLOYMENT, "ctrl", "edge",
                                     timeout=60, sleep=clock.sleep, clock=clock)
    assert clock.now == 0
