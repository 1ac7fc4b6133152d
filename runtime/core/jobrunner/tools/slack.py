"""Mock Slack connector (channels, DMs, mentions and threads awaiting a reply)."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from jobrunner.tools.catalog import PENDING_APPROVAL_STATUS, ToolCategory, ToolSpec
from jobrunner.utils import format_rfc3339, new_id, utcnow

# (id, channel, author, text, minutes ago, is_bot, is_mention, is_dm)
_MESSAGES: tuple[tuple[str, str, str, str, int, bool, bool, bool], ...] = (
    ("slack-001", "#engineering", "sarah.chen", "Deployed v2.4.1 to staging. All smoke tests passing. Will push to prod after standup.", 480, False, False, False),
    ("slack-002", "#engineering", "mike.johnson", "Found a race condition in the payment queue. Working on a fix, PR incoming.", 420, False, False, False),
    ("slack-003", "#incidents", "pagerduty-bot", "[RESOLVED] API latency spike on us-east-1. Root cause: connection pool exhaustion. Mitigation deployed.", 360, True, False, False),
    ("slack-004", "#team-standup", "lisa.park", "Yesterday: finished design specs for settings page. Today: starting on mobile nav. Blockers: none.", 300, False, False, False),
    ("slack-005", "#team-standup", "mike.johnson", "Yesterday: code review + payment queue debugging. Today: shipping the fix. Blockers: need sarah to review PR #158.", 290, False, False, False),
    ("slack-006", "#general", "hr-bot", "Reminder: company all-hands this Friday at 3 PM. Agenda: Q1 results and Q2 planning.", 240, True, False, False),
    ("slack-007", "#engineering", "sarah.chen", "@wayne heads up, the CI pipeline config changed. You may need to rebase your branch.", 180, False, True, False),
    ("slack-008", "DM", "lisa.park", "Hey, do you have time for a quick sync on the dashboard redesign today? I have a few questions about the card layout.", 120, False, False, True),
    ("slack-009", "#incidents", "datadog-bot", "[ALERT] Error rate on /api/checkout above threshold (>1%). Investigating.", 60, True, False, False),
    ("slack-010", "#engineering", "mike.johnson", "PR #158 is up for the payment queue fix. @wayne @sarah.chen would appreciate a review when you get a chance.", 30, False, True, False),
)

# thread_ts -> (channel, subject, [(author, text, minutes ago)], needs_reply, reason)
_THREADS: dict[str, tuple[str, str, tuple[tuple[str, str, int], ...], bool, str]] = {
    "1707900000.000100": (
        "#engineering",
        "PR #158: payment queue race condition fix",
        (
            ("mike.johnson", "PR #158 is up for the payment queue fix. @wayne @sarah.chen would appreciate a review when you get a chance.", 30),
            ("sarah.chen", "Looking at it now. The mutex approach looks solid but I'm wondering if we should also add a retry with backoff on the consumer side?", 25),
            ("mike.johnson", "Good call. I can add that. @wayne what do you think, retry with exponential backoff or fixed interval?", 20),
        ),
        True,
        "Mike asked you a direct question about retry strategy for the payment queue fix.",
    ),
    "1707890000.000200": (
        "#engineering",
        "CI pipeline config change",
        (
            ("sarah.chen", "@wayne heads up, the CI pipeline config changed. You may need to rebase your branch.", 180),
            ("sarah.chen", "Specifically the node version bumped to 20 and the test stage now runs in parallel. Let me know if you hit any issues.", 170),
        ),
        True,
        "Sarah gave you a heads-up about CI changes affecting your branch. An acknowledgment or status update would be helpful.",
    ),
    "1707880000.000300": (
        "#incidents",
        "Checkout error rate spike",
        (
            ("datadog-bot", "[ALERT] Error rate on /api/checkout above threshold (>1%). Investigating.", 60),
            ("sarah.chen", "I see a spike in 502s from the payment service. Could be related to Mike's race condition. Mike are you seeing this?", 55),
            ("mike.johnson", "Yes, this is exactly the bug PR #158 fixes. The race condition causes dropped connections under load.", 50),
            ("sarah.chen", "@wayne can we fast-track the review on #158? This is actively impacting checkout.", 45),
        ),
        True,
        "Sarah is asking you to fast-track the PR #158 review due to active checkout impact.",
    ),
    "1707870000.000400": (
        "#general",
        "Q1 all-hands agenda",
        (
            ("hr-bot", "Reminder: company all-hands this Friday at 3 PM. Agenda: Q1 results and Q2 planning.", 240),
            ("lisa.park", "Will there be time for team demos? I'd love to show the new dashboard.", 230),
            ("sarah.chen", "Great idea! Engineering could do a 5-min slot on the CI improvements too.", 220),
        ),
        False,
        "",
    ),
}


def _messages() -> list[dict[str, Any]]:
    now = utcnow()
    return [
        {
            "id": msg_id,
            "channel": channel,
            "author": author,
            "text": text,
            "timestamp": format_rfc3339(now - timedelta(minutes=minutes)),
            "is_bot": is_bot,
            "is_mention": is_mention,
            "is_dm": is_dm,
        }
        for msg_id, channel, author, text, minutes, is_bot, is_mention, is_dm in _MESSAGES
    ]


def _thread(thread_ts: str) -> dict[str, Any] | None:
    raw = _THREADS.get(thread_ts)
    if raw is None:
        return None
    channel, subject, messages, needs_reply, reason = raw
    now = utcnow()
    return {
        "thread_ts": thread_ts,
        "channel": channel,
        "subject": subject,
        "messages": [
            {"author": author, "text": text, "timestamp": format_rfc3339(now - timedelta(minutes=minutes))}
            for author, text, minutes in messages
        ],
        "needs_reply": needs_reply,
        "reason": reason,
    }


def _limited(items: list[dict[str, Any]], limit: Any) -> list[dict[str, Any]]:
    return items[: int(limit)] if limit else items


def list_channels(args: dict[str, Any]) -> dict[str, Any]:
    channels = sorted({m["channel"] for m in _messages() if not m["is_dm"]})
    return {"channels": channels, "total": len(channels)}


def read_channel(args: dict[str, Any]) -> dict[str, Any]:
    channel = args["channel"]
    messages = _limited([m for m in _messages() if m["channel"] == channel], args.get("limit"))
    return {"channel": channel, "messages": messages, "total": len(messages)}


def read_dms(args: dict[str, Any]) -> dict[str, Any]:
    dms = _limited([m for m in _messages() if m["is_dm"]], args.get("limit"))
    return {"messages": dms, "total": len(dms)}


def read_mentions(args: dict[str, Any]) -> dict[str, Any]:
    mentions = _limited([m for m in _messages() if m["is_mention"]], args.get("limit"))
    return {"messages": mentions, "total": len(mentions)}


def draft_message(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "draft_id": f"draft-{new_id()}",
        "status": PENDING_APPROVAL_STATUS,
        "message": f"Draft message created for {args['channel']}",
        "text_preview": str(args.get("text") or "")[:150],
    }


def summarize_unread(args: dict[str, Any]) -> dict[str, Any]:
    messages = _messages()
    return {
        "total_messages": len(messages),
        "human_messages": sum(1 for m in messages if not m["is_bot"]),
        "mentions": sum(1 for m in messages if m["is_mention"]),
        "unread_dms": sum(1 for m in messages if m["is_dm"]),
        "threads_needing_reply": sum(1 for t in _THREADS.values() if t[3]),
        "summary": (
            "Overnight: 2 engineering updates (deploy + payment fix), 1 resolved incident, 2 standup posts. "
            "You have 2 @mentions (CI rebase + PR review), 1 unread DM from Lisa about dashboard sync, "
            "and 3 threads awaiting your reply."
        ),
    }


def get_threads_needing_reply(args: dict[str, Any]) -> dict[str, Any]:
    threads = []
    for thread_ts, raw in _THREADS.items():
        if not raw[3]:
            continue
        thread = _thread(thread_ts)
        threads.append(
            {
                "thread_ts": thread_ts,
                "channel": thread["channel"],
                "subject": thread["subject"],
                "message_count": len(thread["messages"]),
                "last_message": thread["messages"][-1],
                "reason": thread["reason"],
            }
        )
    return {"threads": threads, "total": len(threads)}


def read_thread(args: dict[str, Any]) -> dict[str, Any]:
    thread_ts = args["thread_ts"]
    thread = _thread(thread_ts)
    if thread is None:
        return {"error": f"Thread {thread_ts} not found", "messages": [], "total": 0}
    thread["total"] = len(thread["messages"])
    return thread


def draft_thread_reply(args: dict[str, Any]) -> dict[str, Any]:
    thread = _thread(args["thread_ts"])
    return {
        "success": True,
        "draft_id": f"draft-reply-{new_id()}",
        "status": PENDING_APPROVAL_STATUS,
        "channel": args["channel"],
        "thread_ts": args["thread_ts"],
        "thread_subject": thread["subject"] if thread else "Unknown thread",
        "message": f"Draft reply created for thread in {args['channel']}",
        "text_preview": str(args.get("text") or "")[:150],
    }


def _limit_schema(default: int) -> dict[str, Any]:
    return {"type": "number", "description": f"Maximum number of messages to return (default {default})"}


_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(name="slack_list_channels", description="List all Slack channels the bot has access to.", input_schema=_NO_ARGS),
    ToolSpec(
        name="slack_read_channel",
        description="Read recent messages from a specific Slack channel.",
        input_schema={
            "type": "object",
            "properties": {"channel": {"type": "string", "description": "The channel name to read (e.g., '#engineering')"}, "limit": _limit_schema(20)},
            "required": ["channel"],
        },
    ),
    ToolSpec(
        name="slack_read_dms",
        description="Read unread direct messages sent to the user.",
        input_schema={"type": "object", "properties": {"limit": _limit_schema(10)}, "required": []},
    ),
    ToolSpec(
        name="slack_read_mentions",
        description="Read messages where the user was @mentioned.",
        input_schema={"type": "object", "properties": {"limit": _limit_schema(10)}, "required": []},
    ),
    ToolSpec(
        name="slack_draft_message",
        description="Draft a message to post in a Slack channel. The message will NOT be sent automatically - it requires human approval first.",
        input_schema={
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "The channel to post to (e.g., '#team-standup')"},
                "text": {"type": "string", "description": "The message text to post"},
                "thread_ts": {"type": "string", "description": "Optional thread timestamp to reply in a thread"},
            },
            "required": ["channel", "text"],
        },
    ),
    ToolSpec(
        name="slack_summarize_unread",
        description="Get a summary of all unread activity across channels, DMs, and mentions, including threads awaiting your reply.",
        input_schema=_NO_ARGS,
    ),
    ToolSpec(
        name="slack_get_threads_needing_reply",
        description="List threads where someone asked you a question, requested your input, or where your reply is expected.",
        input_schema=_NO_ARGS,
    ),
    ToolSpec(
        name="slack_read_thread",
        description="Read the full conversation history of a specific thread.",
        input_schema={
            "type": "object",
            "properties": {"thread_ts": {"type": "string", "description": "The thread timestamp identifier"}},
            "required": ["thread_ts"],
        },
    ),
    ToolSpec(
        name="slack_draft_thread_reply",
        description="Draft a reply to a specific thread. The reply will NOT be sent automatically - it requires human approval first.",
        input_schema={
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "The channel the thread is in (e.g., '#engineering')"},
                "thread_ts": {"type": "string", "description": "The thread timestamp to reply to"},
                "text": {"type": "string", "description": "The reply text to post in the thread"},
            },
            "required": ["channel", "thread_ts", "text"],
        },
    ),
)

CATEGORY = ToolCategory(
    name="slack",
    specs=SPECS,
    functions={
        "list_channels": list_channels,
        "read_channel": read_channel,
        "read_dms": read_dms,
        "read_mentions": read_mentions,
        "draft_message": draft_message,
        "summarize_unread": summarize_unread,
        "get_threads_needing_reply": get_threads_needing_reply,
        "read_thread": read_thread,
        "draft_thread_reply": draft_thread_reply,
    },
)
