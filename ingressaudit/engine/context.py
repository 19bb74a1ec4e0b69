"""Per-target audit state.

An ``AuditContext`` is created fresh for every audited namespace and threaded
through every probe, the report emitters and the fix executor. Nothing about
a run lives outside it.
"""
import io
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TextIO
from ..utils.findings import Classification, Finding, Fix, FixSeverity, ServiceExposure, WorkloadKind
from ..utils.term import BLUE, BOLD, CYAN, GREEN, RED, RESET, YELLOW, strip_ansi

# fact names shared between probes and reports
CLUSTER_VERSION = "cluster_version"
API_SERVER = "api_server"
CURRENT_CONTEXT = "current_context"
DEPLOYMENT_TYPE = "deployment_type"
CONTROLLER_IMAGE = "controller_image"
CONTROLLER_VERSION = "controller_version"
CONTROLLER_CONTAINER = "controller_container"
CONTROLLER_REPLICAS = "controller_replicas"
ADMISSION_SVC_TYPE = "admission_svc_type"
ADMISSION_CLUSTER_IP = "admission_cluster_ip"
ADMISSION_EXTERNAL_IP = "admission_external_ip"
INGRESS_EXPOSING = "ingress_exposing"
ALLOW_SNIPPETS = "allow_snippets"
NETWORK_POLICIES = "network_policies"

UNKNOWN = "unknown"

_MARKS = {
    Classification.PASS: (GREEN, "✓ PASS"),
    Classification.FAIL: (RED, "✗ FAIL"),
    Classification.WARN: (YELLOW, "⚠ WARN"),
    Classification.INFO: (BLUE, "ℹ INFO"),
}


@dataclass
class AuditContext:
    namespace: str
    domain: str = ""
    email: str = ""
    controller_name: str = "ingress-nginx-controller"
    text_report_file: Optional[Path] = None
    json_report_file: Optional[Path] = None
    report_ref: Optional[str] = None
    facts: Dict[str, Any] = field(default_factory=dict)
    findings: List[Finding] = field(default_factory=list)
    fixes: List[Fix] = field(default_factory=list)
    counts: Dict[Classification, int] = field(default_factory=lambda: {c: 0 for c in Classification})
    output: io.StringIO = field(default_factory=io.StringIO)
    stream: Optional[TextIO] = None

    # ── output sink ─────────────────────────────

    def write(self, s: str) -> None:
        out = self.stream if self.stream is not None else sys.stdout
        out.write(s)
        self.output.write(strip_ansi(s))

    def writeln(self, s: str = "") -> None:
        self.write(s + "\n")

    def header(self, title: str) -> None:
        line = "═" * 60
        self.writeln(f"\n{BLUE}{BOLD}{line}{RESET}")
        self.writeln(f"{BLUE}{BOLD}    {title:<56}{RESET}")
        self.writeln(f"{BLUE}{BOLD}{line}{RESET}\n")

    def section(self, title: str) -> None:
        self.writeln(f"\n{BOLD}▶ {title}{RESET}")
        self.writeln("─" * 55)

    def step(self, msg: str) -> None:
        self.writeln(f"  {CYAN}→{RESET} {msg}")

    # ── finding recorder ────────────────────────

    def record(self, classification: Classification, message: str) -> Finding:
        finding = Finding(classification=classification, message=message)
        self.findings.append(finding)
        self.counts[classification] += 1
        color, mark = _MARKS[classification]
        self.writeln(f"{color}{mark}{RESET}: {message}")
        return finding

    def passed(self, message: str) -> Finding:
        return self.record(Classification.PASS, message)

    def fail(self, message: str) -> Finding:
        return self.record(Classification.FAIL, message)

    def warn(self, message: str) -> Finding:
        return self.record(Classification.WARN, message)

    def info(self, message: str) -> Finding:
        return self.record(Classification.INFO, message)

    @property
    def pass_count(self) -> int:
        return self.counts[Classification.PASS]

    @property
    def fail_count(self) -> int:
        return self.counts[Classification.FAIL]

    @property
    def warn_count(self) -> int:
        return self.counts[Classification.WARN]

    @property
    def info_count(self) -> int:
        return self.counts[Classification.INFO]

    # ── fix registry ────────────────────────────

    def register_fix(self, id: str, severity: FixSeverity, description: str, command: str,
                     action: Callable[[], Any]) -> Fix:
        if action is None:
            raise ValueError(f"fix {id!r} registered without an action")
        fix = Fix(id=id, severity=severity, description=description, command=command, action=action)
        self.fixes.append(fix)
        return fix

    # ── typed fact access ───────────────────────

    def fact(self, name: str, default: Any = UNKNOWN) -> Any:
        return self.facts.get(name, default)

    @property
    def workload_kind(self) -> WorkloadKind:
        return self.facts.get(DEPLOYMENT_TYPE, WorkloadKind.UNKNOWN)

    @property
    def admission_exposure(self) -> ServiceExposure:
        return self.facts.get(ADMISSION_SVC_TYPE, ServiceExposure.UNKNOWN)

    @property
    def controller_version(self) -> str:
        return self.facts.get(CONTROLLER_VERSION, UNKNOWN)

    @property
    def contact(self) -> str:
        return self.email or f"admin@{self.domain}"
