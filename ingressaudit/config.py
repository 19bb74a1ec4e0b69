from pathlib import Path
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field

LATEST_CONTROLLER_VERSION = "v1.14.3"
LATEST_CHART_VERSION = "4.14.3"

DEFAULT_CONTROLLER_NAME = "ingress-nginx-controller"
DEFAULT_DOMAIN = "example.com"
ADMISSION_SERVICE = "ingress-nginx-controller-admission"
ADMISSION_SECRET = "ingress-nginx-admission"
HELM_RELEASE = "ingress-nginx"
HELM_CHART = "ingress-nginx/ingress-nginx"
CONTROLLER_POD_SELECTOR = "app.kubernetes.io/name=ingress-nginx"

REQUIRED_TOOLS: Tuple[str, ...] = ("helm",)
ROLLOUT_TIMEOUT_SECONDS = 120
ROLLOUT_POLL_SECONDS = 2.0
CERT_RENEWAL_DAYS = 30

RETIREMENT_NOTICE = "Plan migration from Ingress-NGINX (retiring March 2026)"
MIGRATION_NOTICE = "Consider migrating to Gateway API or alternative controller"


class AuditSettings(BaseModel):
    namespaces: List[str] = Field(default_factory=list)
    domain: str = DEFAULT_DOMAIN
    email: str = ""
    controller_name: str = DEFAULT_CONTROLLER_NAME
    output_dir: Path = Path(".")
    assume_yes: bool = False
    offer_fixes: bool = True
    report_ref: Optional[str] = None
    rollout_timeout: int = ROLLOUT_TIMEOUT_SECONDS
    required_tools: Tuple[str, ...] = REQUIRED_TOOLS

    @property
    def contact(self) -> str:
        return self.email or f"admin@{self.domain}"
