"""Markdown rendering for issue threads and the snapshot thread."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone

from prwarden_core.models import Issue

STATE_MARKER = "<!-- prwarden-state -->"
RETRIGGER_PREFIX = "Re-triggered: "

_STATE_BODY_RE = re.compile(re.escape(STATE_MARKER) + r"\s*```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def format_issue(issue: Issue) -> str:
    lines = [
        f"🤖 **{issue.title}**",
        "",
        f"_{issue.category.value}/{issue.severity.value}_",
        "",
        issue.rationale,
        "",
        f"**Recommendation**: {issue.recommendation}",
    ]
    if issue.fix_example and issue.fix_example.strip():
        lines += ["", "```", issue.fix_example.rstrip(), "```"]
    lines += ["", "_I'm a bot; reply here to discuss._"]
    return "\n".join(lines)


def format_retriggered_issue(issue: Issue) -> str:
    return RETRIGGER_PREFIX + format_issue(issue)


def format_state(fingerprints: list[str], updated_at: datetime | None = None) -> str:
    """Render the snapshot body: a hidden marker plus a JSON block."""
    updated_at = updated_at or datetime.now(timezone.utc)
    state = {"fingerprints": sorted(fingerprints), "updatedAt": updated_at.isoformat()}
    return f"{STATE_MARKER}\n```json\n{json.dumps(state, indent=2)}\n```"


def parse_state(body: str) -> list[str] | None:
    """Return the fingerprint list from a snapshot body, or None if unreadable."""
    match = _STATE_BODY_RE.search(body or "")
    if not match:
        return None
    try:
        state = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    fingerprints = state.get("fingerprints") if isinstance(state, dict) else None
    if not isinstance(fingerprints, list):
        return None
    return [str(f) for f in fingerprints]
