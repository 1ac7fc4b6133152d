"""Mock Gmail connector.

Deterministic inbox used by simulation mode and by live runs without a real
mail backend. No network access.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from jobrunner.tools.catalog import PENDING_APPROVAL_STATUS, ToolCategory, ToolSpec
from jobrunner.utils import format_rfc3339, new_id, utcnow

# (id, from, subject, snippet, hours ago, labels)
_INBOX: tuple[tuple[str, str, str, str, int, tuple[str, ...]], ...] = (
    (
        "msg-001",
        "deals@shopdeals.com",
        "Flash Sale: 70% Off Everything!",
        "Don't miss our biggest sale of the year. Shop now and save big on...",
        1,
        ("INBOX", "CATEGORY_PROMOTIONS"),
    ),
    (
        "msg-002",
        "sarah.chen@company.com",
        "Re: Sprint Planning - Thursday 10am",
        "Hey, can you confirm you'll be at sprint planning? I need your input on the backlog...",
        2,
        ("INBOX", "IMPORTANT"),
    ),
    (
        "msg-003",
        "noreply@github.com",
        "[chief-of-staff] PR #142: Update payment flow",
        "mike-johnson requested your review on PR #142. Changes include updates to the billing...",
        3,
        ("INBOX",),
    ),
    (
        "msg-004",
        "security-alert@g00gle.com",
        "URGENT: Your account has been compromised",
        "Dear user, we have detected unusual activity on your account. Click here immediately to...",
        4,
        ("INBOX",),
    ),
    (
        "msg-005",
        "mike.johnson@company.com",
        "Q1 Roadmap Update",
        "Hi team, I've updated the Q1 roadmap with the latest priorities. Key changes include...",
        5,
        ("INBOX", "IMPORTANT"),
    ),
    (
        "msg-006",
        "newsletter@techcrunch.com",
        "TechCrunch Daily: AI Startup Raises $500M",
        "Today's top stories: AI startup secures record funding, Apple announces new developer tools...",
        6,
        ("INBOX", "CATEGORY_UPDATES"),
    ),
    (
        "msg-007",
        "lisa.park@company.com",
        "Design Review Feedback",
        "Great work on the dashboard mockups! A few suggestions: the nav spacing could be tighter...",
        7,
        ("INBOX", "IMPORTANT"),
    ),
    (
        "msg-008",
        "prince-offer@mail.ng",
        "You Have Won $5,000,000 - Claim Now",
        "Congratulations! You have been selected as the winner of our international lottery...",
        8,
        ("INBOX",),
    ),
    (
        "msg-009",
        "updates@figma.com",
        "What's new in Figma - February 2026",
        "Discover the latest features: improved auto-layout, new plugin API, and faster prototyping...",
        9,
        ("INBOX", "CATEGORY_UPDATES"),
    ),
    (
        "msg-010",
        "admin@paypa1-security.com",
        "Action Required: Verify Your PayPal Account",
        "We've noticed suspicious login attempts. Please verify your identity by clicking...",
        10,
        ("INBOX",),
    ),
)


def _emails() -> list[dict[str, Any]]:
    now = utcnow()
    return [
        {
            "id": msg_id,
            "from": sender,
            "subject": subject,
            "snippet": snippet,
            "date": format_rfc3339(now - timedelta(hours=hours_ago)),
            "is_read": False,
            "labels": list(labels),
        }
        for msg_id, sender, subject, snippet, hours_ago, labels in _INBOX
    ]


def _find(msg_id: str) -> dict[str, Any] | None:
    return next((e for e in _emails() if e["id"] == msg_id), None)


def _describe(msg_id: str) -> str:
    email = _find(msg_id)
    if email is None:
        return f"email {msg_id}"
    return f"email \"{email['subject']}\" from {email['from']}"


def list_emails(args: dict[str, Any]) -> dict[str, Any]:
    emails = _emails()
    if args.get("unread_only"):
        emails = [e for e in emails if not e["is_read"]]
    max_results = args.get("max_results")
    if max_results:
        emails = emails[: int(max_results)]
    return {"emails": emails, "total": len(emails), "unread": sum(1 for e in emails if not e["is_read"])}


def archive_email(args: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "message": f"Archived {_describe(args['id'])}"}


def star_email(args: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "message": f"Starred {_describe(args['id'])}"}


def draft_reply(args: dict[str, Any]) -> dict[str, Any]:
    email = _find(args["id"])
    target = f"\"{email['subject']}\" to {email['from']}" if email else f"email {args['id']}"
    return {
        "success": True,
        "draft_id": f"draft-{new_id()}",
        "status": PENDING_APPROVAL_STATUS,
        "message": f"Draft reply created for {target}",
        "body_preview": str(args.get("body") or "")[:100],
    }


def flag_email(args: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "message": f"Flagged {_describe(args['id'])}: {args['reason']}"}


def _id_schema(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="gmail_list_emails",
        description="List recent emails from the inbox. Returns email id, from, subject, snippet, date, read status, and labels.",
        input_schema={
            "type": "object",
            "properties": {
                "max_results": {"type": "number", "description": "Maximum number of emails to return (default 10)"},
                "unread_only": {"type": "boolean", "description": "Only return unread emails (default false)"},
            },
            "required": [],
        },
    ),
    ToolSpec(
        name="gmail_archive_email",
        description="Archive an email by removing it from the inbox. The email will still be accessible in All Mail.",
        input_schema={"type": "object", "properties": {"id": _id_schema("The email message ID to archive")}, "required": ["id"]},
    ),
    ToolSpec(
        name="gmail_star_email",
        description="Star an email to mark it as important for later follow-up.",
        input_schema={"type": "object", "properties": {"id": _id_schema("The email message ID to star")}, "required": ["id"]},
    ),
    ToolSpec(
        name="gmail_draft_reply",
        description="Create a draft reply to an email. The draft will NOT be sent automatically - it requires human approval first.",
        input_schema={
            "type": "object",
            "properties": {
                "id": _id_schema("The email message ID to reply to"),
                "body": {"type": "string", "description": "The body text of the reply"},
            },
            "required": ["id", "body"],
        },
    ),
    ToolSpec(
        name="gmail_flag_email",
        description="Flag an email as suspicious or spam with a reason.",
        input_schema={
            "type": "object",
            "properties": {
                "id": _id_schema("The email message ID to flag"),
                "reason": {"type": "string", "description": "Reason for flagging (e.g., 'phishing', 'spam', 'suspicious sender')"},
            },
            "required": ["id", "reason"],
        },
    ),
)

CATEGORY = ToolCategory(
    name="gmail",
    specs=SPECS,
    functions={
        "list_emails": list_emails,
        "archive_email": archive_email,
        "star_email": star_email,
        "draft_reply": draft_reply,
        "flag_email": flag_email,
    },
)
