"""Mock GitHub connector (open pull requests of a single repository)."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from jobrunner.tools.catalog import PENDING_APPROVAL_STATUS, ToolCategory, ToolSpec
from jobrunner.utils import format_rfc3339, utcnow

_PULL_REQUESTS: tuple[dict[str, Any], ...] = (
    {
        "number": 139,
        "title": "Add user avatar component",
        "author": "lisa-park",
        "branch": "feature/user-avatar",
        "description": "Adds a reusable UserAvatar component that displays user profile images with fallback initials. Includes loading states and error handling.",
        "files_changed": 4,
        "additions": 186,
        "deletions": 12,
        "opened_hours_ago": 48,
        "updated_hours_ago": 24,
        "checks_status": "passing",
        "labels": ["feature", "frontend"],
    },
    {
        "number": 141,
        "title": "Refactor auth middleware",
        "author": "alex-kumar",
        "branch": "refactor/auth-middleware",
        "description": "Refactors the authentication middleware to use a cleaner pipeline pattern. Adds support for token refresh and improves error messages.",
        "files_changed": 7,
        "additions": 234,
        "deletions": 189,
        "opened_hours_ago": 36,
        "updated_hours_ago": 12,
        "checks_status": "passing",
        "labels": ["refactor", "backend", "auth"],
    },
    {
        "number": 142,
        "title": "Update payment flow",
        "author": "mike-johnson",
        "branch": "feature/payment-update",
        "description": "Updates the payment flow to support multi-currency billing. Adds new payment provider integration and updates the checkout UI.",
        "files_changed": 12,
        "additions": 542,
        "deletions": 87,
        "opened_hours_ago": 24,
        "updated_hours_ago": 2,
        "checks_status": "failing",
        "labels": ["feature", "payments", "needs-review"],
    },
    {
        "number": 143,
        "title": "Fix dark mode toggle persistence",
        "author": "sarah-chen",
        "branch": "fix/dark-mode-persist",
        "description": "Fixes an issue where the dark mode preference was not being saved to localStorage. Also fixes a flash of unstyled content on page load.",
        "files_changed": 2,
        "additions": 28,
        "deletions": 8,
        "opened_hours_ago": 4,
        "updated_hours_ago": 1,
        "checks_status": "pending",
        "labels": ["bug", "frontend"],
    },
)


def _pull_requests() -> list[dict[str, Any]]:
    now = utcnow()
    prs = []
    for raw in _PULL_REQUESTS:
        pr = {k: v for k, v in raw.items() if not k.endswith("_hours_ago")}
        pr["base"] = "main"
        pr["created_at"] = format_rfc3339(now - timedelta(hours=raw["opened_hours_ago"]))
        pr["updated_at"] = format_rfc3339(now - timedelta(hours=raw["updated_hours_ago"]))
        prs.append(pr)
    return prs


def _label(pr_number: int) -> str:
    pr = next((p for p in _PULL_REQUESTS if p["number"] == pr_number), None)
    return f"PR #{pr_number} \"{pr['title']}\"" if pr else f"PR #{pr_number}"


def list_open_prs(args: dict[str, Any]) -> dict[str, Any]:
    prs = _pull_requests()
    return {"pull_requests": prs, "total": len(prs)}


def review_pr(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "message": f"Review submitted on {_label(int(args['pr_number']))}",
        "comments_preview": str(args.get("comments") or "")[:200],
    }


def approve_pr(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "status": PENDING_APPROVAL_STATUS,
        "message": f"Approval for {_label(int(args['pr_number']))} requires human confirmation",
    }


def comment_on_pr(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "message": f"Comment posted on {_label(int(args['pr_number']))}",
        "comment_preview": str(args.get("comment") or "")[:200],
    }


_PR_NUMBER = {"type": "number", "description": "The pull request number"}

SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="github_list_open_prs",
        description="List all open pull requests in the repository. Returns PR number, title, author, branch, description, files changed, check status, and labels.",
        input_schema={
            "type": "object",
            "properties": {"state": {"type": "string", "description": 'Filter by PR state: "open", "closed", or "all" (default "open")'}},
            "required": [],
        },
    ),
    ToolSpec(
        name="github_review_pr",
        description="Submit a review on a pull request with comments about code quality, bugs, or suggestions.",
        input_schema={
            "type": "object",
            "properties": {"pr_number": _PR_NUMBER, "comments": {"type": "string", "description": "Review comments and feedback"}},
            "required": ["pr_number", "comments"],
        },
    ),
    ToolSpec(
        name="github_approve_pr",
        description="Approve a pull request. NOTE: This action requires human approval before it takes effect.",
        input_schema={"type": "object", "properties": {"pr_number": _PR_NUMBER}, "required": ["pr_number"]},
    ),
    ToolSpec(
        name="github_comment_on_pr",
        description="Post a comment on a pull request.",
        input_schema={
            "type": "object",
            "properties": {"pr_number": _PR_NUMBER, "comment": {"type": "string", "description": "The comment text to post"}},
            "required": ["pr_number", "comment"],
        },
    ),
)

CATEGORY = ToolCategory(
    name="github",
    specs=SPECS,
    functions={
        "list_open_prs": list_open_prs,
        "review_pr": review_pr,
        "approve_pr": approve_pr,
        "comment_on_pr": comment_on_pr,
    },
)
