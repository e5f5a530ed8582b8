"""Slack Web API integration."""

from dataclasses import dataclass
from datetime import date

from project_tracker.core.errors import CollaboratorFailure
from project_tracker.db.models import PRIORITY_LABELS, STAGE_LABELS, Proposal, Task


class SlackError(CollaboratorFailure):
    """Raised when a Slack operation fails."""


@dataclass
class SlackMessage:
    channel: str
    ts: str
    text: str


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def send_message(
    token: str | None,
    channel: str,
    text: str,
    blocks: list[dict] | None = None,
) -> SlackMessage:
    """Send a message to a Slack channel."""
    client = get_client(token)
    if not client:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")

    from slack_sdk.errors import SlackApiError

    try:
        response = client.chat_postMessage(
            channel=channel,
            text=text,
            blocks=blocks,
        )
    except SlackApiError as e:
        raise SlackError(f"Slack API error: {e.response.get('error', e)}", cause=e) from e

    return SlackMessage(
        channel=response["channel"],
        ts=response["ts"],
        text=text,
    )


def format_stage_notification(proposal: Proposal) -> list[dict]:
    """Format a proposal stage change as Slack blocks."""
    emoji = ":tada:" if proposal.stage == "contract_signed" else ":arrow_forward:"
    client = f" for {proposal.client_name}" if proposal.client_name else ""
    value = f" | Value: {proposal.value:,.2f}" if proposal.value is not None else ""
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"{emoji} *Proposal Update*\n*{proposal.title}*{client} (`{proposal.id}`)\n"
                    f"Stage: *{STAGE_LABELS[proposal.stage]}* | "
                    f"Probability: {proposal.probability_to_close}%{value}"
                ),
            },
        }
    ]


def format_deadline_digest(
    overdue: list[Task],
    upcoming: list[Task],
    today: date,
) -> list[dict]:
    """Format overdue and upcoming tasks as Slack blocks."""

    def _line(t: Task) -> str:
        return f"• *{t.title}* (`{t.id}`) due {t.due_date.isoformat()} [{PRIORITY_LABELS[t.priority]}]"

    overdue_text = "\n".join(_line(t) for t in overdue) or "_None_"
    upcoming_text = "\n".join(_line(t) for t in upcoming) or "_None_"
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f":calendar: *Deadline Digest for {today.isoformat()}*",
            },
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f":red_circle: *Overdue ({len(overdue)})*\n{overdue_text}"},
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f":hourglass: *Upcoming ({len(upcoming)})*\n{upcoming_text}"},
        },
    ]
