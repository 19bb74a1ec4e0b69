import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from kubernetes.client import ApiException
from .base import Probe
from ..config import ADMISSION_SECRET, CERT_RENEWAL_DAYS
from ..engine.context import AuditContext
from ..errors import CommandError
from ..utils import kube
from ..utils.findings import WorkloadKind
from ..utils.shell import capture

logger = logging.getLogger(__name__)

OPENSSL_DATE_FORMAT = "%b %d %H:%M:%S %Y %Z"


def certificate_expiry(pem: bytes) -> Optional[datetime]:
    """Return the notAfter date of a PEM certificate, or None when openssl can't tell."""
    try:
        out = capture("openssl", "x509", "-noout", "-enddate", stdin=pem)
    except CommandError as e:
        logger.debug("openssl failed: %s", e)
        return None
    raw = out.strip()
    if raw.startswith("notAfter="):
        raw = raw[len("notAfter="):]
    try:
        return datetime.strptime(raw, OPENSSL_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug("unparsable certificate expiry %r", raw)
        return None


class CertificatesProbe(Probe):
    name = "certificates"
    title = "PHASE 8 — TLS/SSL CERTIFICATE AUDIT"

    def __init__(self, clients: Dict[str, Any], now: Optional[Callable[[], datetime]] = None):
        super().__init__(clients)
        self.now = now or (lambda: datetime.now(timezone.utc))

    def run(self, ctx: AuditContext) -> None:
        ctx.header(self.title)
        self._admission_cert(ctx)
        self._default_cert(ctx)

    def _admission_cert(self, ctx: AuditContext) -> None:
        ctx.section("Admission Webhook Certificates")
        ctx.step("Checking admission webhook certificate secret...")
        try:
            data = kube.read_secret_data(self.clients, ADMISSION_SECRET, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not read admission webhook certificate secret ({e.reason})")
            return
        if data is None:
            ctx.warn("Admission webhook certificate secret not found")
            return
        ctx.passed("Admission webhook certificate secret exists")

        cert_b64 = data.get("cert")
        if not cert_b64:
            ctx.info("Secret has no 'cert' entry — expiry not checked")
            return
        ctx.step("Decoding certificate...")
        try:
            pem = base64.b64decode(cert_b64)
        except (binascii.Error, ValueError):
            ctx.warn("Admission certificate is not valid base64")
            return
        expiry = certificate_expiry(pem)
        if expiry is None:
            ctx.warn("Could not determine certificate expiry (openssl unavailable or unreadable certificate)")
            return
        ctx.info(f"Certificate expiry: {expiry.strftime('%Y-%m-%d %H:%M:%S %Z')}")
        days_left = int((expiry - self.now()).total_seconds() // 86400)
        if days_left < 0:
            ctx.fail("Certificate has EXPIRED!")
        elif days_left < CERT_RENEWAL_DAYS:
            ctx.warn(f"Certificate expires in {days_left} days — renewal needed soon")
        else:
            ctx.passed(f"Certificate valid for {days_left} days")

    def _default_cert(self, ctx: AuditContext) -> None:
        ctx.section("Default SSL Certificate")
        kind = ctx.workload_kind
        if kind is WorkloadKind.UNKNOWN:
            kind = WorkloadKind.DEPLOYMENT
        ctx.step("Checking default SSL certificate arg...")
        try:
            wl = kube.read_workload(self.clients, kind, ctx.controller_name, ctx.namespace)
        except ApiException as e:
            ctx.warn(f"Could not read controller workload ({e.reason})")
            return
        default_cert = wl.arg_value("--default-ssl-certificate") if wl else None
        if not default_cert:
            ctx.info("No default SSL certificate configured (will use self-signed)")
            return

        ctx.info(f"Default SSL certificate: {default_cert}")
        ns, sep, name = default_cert.partition("/")
        if not sep:
            ctx.warn(f"Default SSL certificate '{default_cert}' is not in namespace/name form")
            return
        try:
            found = kube.read_secret_data(self.clients, name, ns) is not None
        except ApiException as e:
            ctx.warn(f"Could not read secret '{default_cert}' ({e.reason})")
            return
        if found:
            ctx.passed("Default SSL certificate secret exists")
        else:
            ctx.fail(f"Default SSL certificate secret '{default_cert}' not found")
