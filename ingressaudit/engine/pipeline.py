import logging
from typing import Any, Dict, List, Sequence
from .context import AuditContext
from ..config import REQUIRED_TOOLS
from ..probes.admission import AdmissionProbe
from ..probes.base import Probe
from ..probes.certificates import CertificatesProbe
from ..probes.configuration import ConfigurationProbe
from ..probes.ingress import IngressProbe
from ..probes.network import NetworkProbe
from ..probes.podsecurity import PodSecurityProbe
from ..probes.preflight import PreflightProbe
from ..probes.version import VersionProbe
from ..probes.vulnerabilities import VulnerabilityProbe

logger = logging.getLogger(__name__)


def build_pipeline(clients: Dict[str, Any], required_tools: Sequence[str] = REQUIRED_TOOLS) -> List[Probe]:
    # Order matters: version discovery sets the workload kind and controller
    # version, admission sets the exposure mode; later probes read both.
    return [
        PreflightProbe(clients, required_tools),
        VersionProbe(clients),
        AdmissionProbe(clients),
        NetworkProbe(clients),
        ConfigurationProbe(clients),
        PodSecurityProbe(clients),
        VulnerabilityProbe(clients),
        CertificatesProbe(clients),
        IngressProbe(clients),
    ]


def run_pipeline(ctx: AuditContext, probes: Sequence[Probe]) -> None:
    """Run every probe once, in order. ``AuditAborted`` propagates to the caller."""
    for probe in probes:
        logger.debug("running probe %s for namespace %s", probe.name, ctx.namespace)
        probe.run(ctx)
