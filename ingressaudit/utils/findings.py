from enum import Enum
from typing import Any, Callable
from pydantic import BaseModel, ConfigDict


class Classification(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    WARN = "WARN"
    INFO = "INFO"


class FixSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"


class WorkloadKind(str, Enum):
    DAEMONSET = "DaemonSet"
    DEPLOYMENT = "Deployment"
    UNKNOWN = "unknown"

    @property
    def resource(self) -> str:
        # kubectl resource name; rollouts default to the Deployment
        if self is WorkloadKind.DAEMONSET:
            return "daemonset"
        return "deployment"


class ServiceExposure(str, Enum):
    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"
    EXTERNAL_NAME = "ExternalName"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "ServiceExposure":
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True)

    classification: Classification
    message: str


class Fix(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    severity: FixSeverity
    description: str
    command: str
    action: Callable[[], Any]
