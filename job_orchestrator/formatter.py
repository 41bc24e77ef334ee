"""
Human-readable notification text: step progress, terminal status, plan summary
and final job results. Pure functions, no I/O.
"""

from typing import Any, Dict, List, Optional, Union

from .models import Business, Contact, JobPlan, JobResults

MAX_LISTED = 10

ACTION_EMOJI = {
    "discover": "🔍",
    "filter": "🎯",
    "enrich": "📞",
    "audit": "🌐",
    "analyze": "📊",
    "draft-email": "✉️",
}
DEFAULT_EMOJI = "⚙️"

JOB_COMPLETED_MESSAGE = "✅ Job completed! Fetching results..."
JOB_CANCELLED_MESSAGE = "🛑 Job was cancelled"
DEFAULT_JOB_ERROR = "Unknown error"


def emoji_for_action(action: str) -> str:
    return ACTION_EMOJI.get(action, DEFAULT_EMOJI)


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def format_progress(action: str, step_status: str, current: int, total: int) -> str:
    label = f"{emoji_for_action(action)} {capitalize_first(action)}"
    if step_status == "completed":
        return f"{label} complete! ({current}/{total})"
    return f"{label} in progress... ({current}/{total})"


def format_job_failed(error: Optional[str]) -> str:
    return f"❌ Job failed: {error or DEFAULT_JOB_ERROR}"


def format_plan_summary(plan: JobPlan) -> str:
    lines = [f"🤖 On it! Planned {len(plan.steps)} steps:"]
    for step in plan.steps:
        lines.append(f"{step.order}. {emoji_for_action(step.action)} {capitalize_first(step.action)}")
    return "\n".join(lines)


def _business_lines(index: int, business: Business) -> List[str]:
    head = f"{index}. **{business.name}**"
    if business.rating is not None:
        head += f" ⭐ {business.rating:.1f}"
    if business.review_count is not None:
        head += f" ({business.review_count} reviews)"
    lines = [head]
    if business.phone:
        lines.append(f"   📞 {business.phone}")
    if business.website:
        lines.append(f"   🌐 {business.website}")
    return lines


def _contact_lines(index: int, contact: Contact) -> List[str]:
    lines = []
    if contact.name:
        head = f"{index}. **{contact.name}**"
        if contact.role:
            head += f" ({contact.role})"
        lines.append(head)
    if contact.email:
        lines.append(f"   ✉️ {contact.email}")
    if contact.phone:
        lines.append(f"   📞 {contact.phone}")
    return lines


def format_job_results(results: Union[JobResults, Dict[str, Any]]) -> str:
    if not isinstance(results, JobResults):
        results = JobResults.model_validate(results if isinstance(results, dict) else {})

    out = ["📊 **Job Results**", ""]

    if results.job is not None:
        if results.job.description:
            out.append(f"**Task**: {results.job.description}")
        if results.job.status:
            out.append(f"**Status**: {results.job.status}")
        out.append("")

    sections = (
        ("🏢", "Businesses", results.businesses, _business_lines),
        ("📇", "Contacts", results.contacts, _contact_lines),
    )
    for emoji, title, entries, render in sections:
        if not entries:
            continue
        out.append(f"{emoji} **Found {len(entries)} {title}:**")
        out.append("")
        for i, entry in enumerate(entries[:MAX_LISTED], start=1):
            out.extend(render(i, entry))
            out.append("")
        if len(entries) > MAX_LISTED:
            out.append(f"...and {len(entries) - MAX_LISTED} more")
            out.append("")

    return "\n".join(out).rstrip("\n") + "\n"
