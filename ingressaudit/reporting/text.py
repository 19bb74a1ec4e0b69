from tabulate import tabulate
from .summary import StatusTier, build_recommendations, overall_status
from ..engine.context import AuditContext
from ..utils.findings import ServiceExposure
from ..utils.term import BOLD, GREEN, RED, RESET, YELLOW

_TIER_LINES = {
    StatusTier.EXCELLENT: (GREEN, "EXCELLENT", "No critical issues or warnings found."),
    StatusTier.GOOD: (YELLOW, "GOOD", "No critical issues, but {warned} warning(s) found."),
    StatusTier.NEEDS_ATTENTION: (YELLOW, "NEEDS ATTENTION", "{failed} critical issue(s) found — remediation recommended."),
    StatusTier.CRITICAL: (RED, "CRITICAL", "{failed} critical issue(s) found — immediate action required!"),
}


def summary_box(ctx: AuditContext) -> str:
    rows = [
        ["Domain:", ctx.domain],
        ["Email:", ctx.contact],
        ["✓ Passed:", ctx.pass_count],
        ["✗ Failed:", ctx.fail_count],
        ["⚠ Warnings:", ctx.warn_count],
        ["ℹ Info:", ctx.info_count],
    ]
    return tabulate(rows, tablefmt="rounded_outline", disable_numparse=True)


def write_summary(ctx: AuditContext) -> None:
    """Append the closing summary block to the audit narrative."""
    ctx.header("AUDIT SUMMARY")
    for line in summary_box(ctx).splitlines():
        ctx.writeln("  " + line)
    ctx.writeln()

    tier = overall_status(ctx.fail_count, ctx.warn_count)
    color, label, detail = _TIER_LINES[tier]
    ctx.writeln(f"  {color}{BOLD}● Overall Status: {label}{RESET}")
    ctx.writeln("  " + detail.format(failed=ctx.fail_count, warned=ctx.warn_count))
    ctx.writeln()

    exposure = ctx.admission_exposure
    compliant = exposure is ServiceExposure.CLUSTER_IP
    ctx.writeln(f"  {BOLD}Key Findings:{RESET}")
    ctx.writeln(f"    • Controller version:          {ctx.controller_version}")
    ctx.writeln(f"    • Admission controller:        {exposure.value}")
    mark = f"{GREEN}✓ COMPLIANT{RESET}" if compliant else f"{RED}✗ NON-COMPLIANT{RESET}"
    ctx.writeln(f"    • Admission exposure:          {mark}")
    ctx.writeln()

    ctx.writeln(f"  {BOLD}Recommendations:{RESET}")
    for i, rec in enumerate(build_recommendations(ctx.controller_version, exposure), 1):
        ctx.writeln(f"    {i}. {rec}")

    if ctx.report_ref:
        ctx.writeln()
        ctx.writeln(f"  {BOLD}Abuse Report Response:{RESET}")
        ctx.writeln(f"    Report ID: {ctx.report_ref}")
        if compliant:
            ctx.writeln(f"    Status:    {GREEN}✓ RESOLVED{RESET}")
            ctx.writeln("    Details:   Admission controller is not publicly exposed")
        else:
            ctx.writeln(f"    Status:    {RED}✗ STILL VULNERABLE{RESET}")
            ctx.writeln(f"    Details:   Exposed via {exposure.value} — immediate remediation required")

    ctx.writeln()
    ctx.writeln(f"  {BOLD}Report files generated:{RESET}")
    ctx.writeln(f"    • {ctx.text_report_file} (text)")
    ctx.writeln(f"    • {ctx.json_report_file} (json)")
    ctx.writeln()
    ctx.writeln(f"  {BOLD}For questions: {ctx.contact}{RESET}")


def emit(ctx: AuditContext) -> str:
    """The narrative report as persisted: everything written so far, without colour codes."""
    return ctx.output.getvalue()
