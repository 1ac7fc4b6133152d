"""Deterministic scripts for simulation mode.

When no completion-service credential is configured, a run replays a fixed
sequence of tool calls per tool category instead of asking a model. The steps
go through the same tool-call processor as live runs, so boundary checks,
approval gating and the recorded actions look exactly like a live run's.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


@dataclass(frozen=True)
class SimulatedStep:
    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)
    description: str | None = None


@dataclass(frozen=True)
class SimulationScript:
    category: str
    steps: tuple[SimulatedStep, ...]
    summary: str


_SARAH_REPLY = "Hi Sarah, confirming attendance for Thursday's sprint planning. I'll have the backlog review ready. See you at 10am."

_SUSPICIOUS = (
    ("msg-004", "Phishing: spoofed Google domain (g00gle.com)"),
    ("msg-008", "Spam: classic advance-fee scam"),
    ("msg-010", "Phishing: spoofed PayPal domain (paypa1-security.com)"),
)

GMAIL = SimulationScript(
    category="gmail",
    steps=(
        SimulatedStep("gmail_list_emails", {}, "Listed inbox emails"),
        *(SimulatedStep("gmail_archive_email", {"id": m}, f"Archived marketing/newsletter email {m}") for m in ("msg-001", "msg-006", "msg-009")),
        *(SimulatedStep("gmail_star_email", {"id": m}, f"Starred important email {m}") for m in ("msg-002", "msg-005", "msg-007")),
        *(
            SimulatedStep("gmail_flag_email", {"id": m, "reason": reason}, f"Flagged suspicious email {m}: {reason}")
            for m, reason in _SUSPICIOUS
        ),
        SimulatedStep(
            "gmail_draft_reply",
            {"id": "msg-002", "body": _SARAH_REPLY},
            f'Draft reply to Sarah Chen (msg-002) re: Sprint Planning: "{_SARAH_REPLY}"',
        ),
    ),
    summary="Processed inbox: archived 3 marketing emails, starred 3 important, flagged 3 suspicious.",
)

_PR_COMMENTS = (
    (
        139,
        "Clean implementation of the UserAvatar component. Good test coverage. "
        "Suggestion: consider memoizing the image load handler to prevent unnecessary re-renders.",
    ),
    (
        141,
        "The token refresh logic is well-structured. One concern: the error handling on line 47 might silently "
        "swallow connection timeouts. Consider adding explicit timeout handling.",
    ),
)

GITHUB = SimulationScript(
    category="github",
    steps=(
        SimulatedStep("github_list_open_prs", {}, "Listed open pull requests"),
        *(
            SimulatedStep("github_comment_on_pr", {"pr_number": pr, "comment": text}, f'Commented on PR #{pr}: "{text[:80]}..."')
            for pr, text in _PR_COMMENTS
        ),
        SimulatedStep(
            "github_review_pr",
            {
                "pr_number": 142,
                "comments": (
                    "Found potential null pointer dereference: user.billingAddress is accessed without null check on "
                    "line 83 of payment-handler.ts. This will throw if a user hasn't set up billing yet."
                ),
            },
            "Reviewed PR #142: Found potential null pointer bug in payment-handler.ts line 83",
        ),
        SimulatedStep(
            "github_approve_pr",
            {"pr_number": 139},
            "Approve PR #139 (Add user avatar component) - all checks passing, clean code, good tests",
        ),
    ),
    summary="Reviewed 4 open PRs. Commented on 2, found a bug in PR #142.",
)

_THREAD_REPLIES = (
    (
        "1707900000.000100",
        "#engineering",
        "PR #158: payment queue race condition fix",
        "Good question. I'd go with exponential backoff, start at 100ms and cap at 5s. Fixed intervals can cause a "
        "thundering herd if multiple consumers retry at the same time. Happy to review the PR once that's added.",
    ),
    (
        "1707890000.000200",
        "#engineering",
        "CI pipeline config change",
        "Thanks for the heads-up Sarah. I'll rebase this morning; my branch shouldn't have any node-version-specific deps.",
    ),
    (
        "1707880000.000300",
        "#incidents",
        "Checkout error rate spike",
        "On it. I'll prioritize reviewing #158 right now. Mike, if the fix is scoped to the connection pool race, "
        "let's get it merged and deployed to staging ASAP.",
    ),
)


def _thread_steps() -> Iterable[SimulatedStep]:
    for thread_ts, channel, subject, reply in _THREAD_REPLIES:
        yield SimulatedStep("slack_read_thread", {"thread_ts": thread_ts}, f"Read thread: {subject}")
        yield SimulatedStep(
            "slack_draft_thread_reply",
            {"channel": channel, "thread_ts": thread_ts, "text": reply},
            f'Draft reply in {channel} thread "{subject}": "{reply}"',
        )


SLACK = SimulationScript(
    category="slack",
    steps=(
        SimulatedStep("slack_summarize_unread", {}, "Summarized unread Slack activity"),
        SimulatedStep("slack_read_mentions", {}, "Checked @mentions"),
        SimulatedStep("slack_read_dms", {}, "Checked direct messages"),
        SimulatedStep("slack_get_threads_needing_reply", {}, "Found 3 threads needing your reply"),
        *_thread_steps(),
    ),
    summary="Slack catchup: 2 @mentions, 1 DM, 3 threads need your reply. Drafted 3 thread replies.",
)

SCRIPTS: dict[str, SimulationScript] = {s.category: s for s in (GMAIL, GITHUB, SLACK)}


def scripts_for(categories: Iterable[str]) -> list[SimulationScript]:
    """Scripts for the job's categories in the job's order; unknown categories have none."""
    return [SCRIPTS[c] for c in categories if c in SCRIPTS]


def summarize(scripts: Iterable[SimulationScript], *, action_count: int, pending_count: int) -> str:
    parts = [s.summary for s in scripts]
    if not parts:
        parts.append(f"Processed {action_count} actions.")
    if pending_count > 0:
        parts.append(f"{pending_count} action(s) awaiting approval.")
    return " ".join(parts)
