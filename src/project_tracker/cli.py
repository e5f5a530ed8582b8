"""CLI entry point for the project tracker."""

import asyncio
import json
import logging
import sys
from datetime import date

import click

from project_tracker.config import get_config
from project_tracker.core import activity as activity_mod
from project_tracker.core import comments as comments_mod
from project_tracker.core import projects as projects_mod
from project_tracker.core import proposals as proposals_mod
from project_tracker.core import stages
from project_tracker.core import tags as tags_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.errors import TrackerError
from project_tracker.core.metrics import load_metrics
from project_tracker.core.schedule import gantt_rows, is_overdue, is_upcoming, month_window
from project_tracker.db.engine import get_db
from project_tracker.db.models import PRIORITIES, STAGE_LABELS, STAGE_ORDER, STATUS_LABELS, STATUSES
from project_tracker.integrations import slack as slack_mod
from project_tracker.web import serializers as ser


def _get_db():
    config = get_config()
    return get_db(config.db_path)


class TrackerGroup(click.Group):
    """Group that reports tracker errors as a message and exit code 1."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except TrackerError as e:
            click.echo(f"Error: {e.message}", err=True)
            ctx.exit(1)


DAY = click.DateTime(formats=["%Y-%m-%d"])


def _day(value) -> date:
    return value.date() if value else date.today()


@click.group(cls=TrackerGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose):
    """pt - Project Tracker CLI"""
    config = get_config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── Project Commands ──────────────────────────────────────────────────────────


@main.group("project")
def project_group():
    """Manage projects."""
    pass


@project_group.command("add")
@click.argument("name")
@click.option("--description", "-d", default=None, help="Project description")
@click.option("--color", default="#3b82f6", help="Display color")
@click.option("--start", default=None, help="Start date (YYYY-MM-DD)")
@click.option("--end", default=None, help="End date (YYYY-MM-DD)")
def project_add(name, description, color, start, end):
    """Create a new project."""
    with _get_db() as db:
        project = projects_mod.create_project(
            db, name, description=description, color=color, start_date=start, end_date=end
        )
        click.echo(f"Project created: {project.id} ({project.name})")


@project_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def project_list(json_output):
    """List projects."""
    with _get_db() as db:
        projects = projects_mod.list_projects(db)
        if json_output:
            click.echo(json.dumps([ser.project_dict(p) for p in projects], indent=2))
            return
        if not projects:
            click.echo("No projects found.")
            return
        for p in projects:
            state = "" if p.is_active else " [inactive]"
            click.echo(f"  {p.id}: {p.name}{state}")


@project_group.command("show")
@click.argument("project_id")
@click.option("--today", type=DAY, default=None, help="Reference day (YYYY-MM-DD)")
def project_show(project_id, today):
    """Show project details and progress."""
    with _get_db() as db:
        project = projects_mod.get_project(db, project_id)
        stats = projects_mod.project_stats(
            tasks_mod.list_tasks(db, project_id, with_tags=False), project_id, _day(today)
        )
        click.echo(f"Project: {project.id}")
        click.echo(f"  Name: {project.name}")
        if project.description:
            click.echo(f"  Description: {project.description}")
        if project.start_date or project.end_date:
            click.echo(f"  Dates: {project.start_date or '?'} → {project.end_date or '?'}")
        click.echo(
            f"  Tasks: {stats['total']} total, {stats['completed']} completed, "
            f"{stats['in_progress']} in progress, {stats['overdue']} overdue"
        )
        click.echo(f"  Progress: {stats['progress_pct']}%")


@project_group.command("delete")
@click.argument("project_id")
def project_delete(project_id):
    """Delete a project. Its tasks and proposals are kept."""
    with _get_db() as db:
        projects_mod.delete_project(db, project_id)
        click.echo(f"Deleted project: {project_id}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("add")
@click.argument("title")
@click.option("--project", default=None, help="Project ID")
@click.option("--description", "-d", default=None, help="Task description")
@click.option("--priority", "-p", default="medium", type=click.Choice(PRIORITIES))
@click.option("--status", "-s", default="not_started", type=click.Choice(STATUSES))
@click.option("--start", default=None, help="Start date (YYYY-MM-DD)")
@click.option("--due", default=None, help="Due date (YYYY-MM-DD)")
@click.option("--assignee", default=None, help="Assigned to")
@click.option("--depends-on", default=None, help="ID of the task this depends on")
@click.option("--estimate", type=float, default=None, help="Estimated hours")
def task_add(title, project, description, priority, status, start, due, assignee, depends_on, estimate):
    """Create a new task."""
    with _get_db() as db:
        task = tasks_mod.create_task(
            db,
            title,
            project_id=project,
            description=description,
            priority=priority,
            status=status,
            start_date=start,
            due_date=due,
            assigned_to=assignee,
            depends_on=depends_on,
            estimated_hours=estimate,
        )
        click.echo(f"Created task: {task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Priority: {task.priority}")
        click.echo(f"  Status: {task.status}")
        if task.due_date:
            click.echo(f"  Due: {task.due_date}")


@task_group.command("list")
@click.option("--project", default=None, help="Project ID")
@click.option("--status", default=None, type=click.Choice(STATUSES), help="Filter by status")
@click.option("--today", type=DAY, default=None, help="Reference day (YYYY-MM-DD)")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(project, status, today, json_output):
    """List tasks."""
    day = _day(today)
    with _get_db() as db:
        tasks = tasks_mod.list_tasks(db, project, status=status)

        if json_output:
            click.echo(json.dumps([ser.task_dict(t) for t in tasks], indent=2))
            return

        if not tasks:
            click.echo("No tasks found.")
            return

        status_icons = {
            "not_started": "○",
            "in_progress": "●",
            "on_hold": "‖",
            "review": "◐",
            "completed": "✓",
        }

        for task in tasks:
            icon = status_icons.get(task.status, "?")
            due = f" due {task.due_date}" if task.due_date else ""
            flag = " OVERDUE" if is_overdue(task, day) else ""
            tags = f" [{', '.join(t.name for t in task.tags)}]" if task.tags else ""
            click.echo(f"  {icon} {task.priority:<8} {task.id}: {task.title} ({task.status}){due}{flag}{tags}")


@task_group.command("show")
@click.argument("task_id")
def task_show(task_id):
    """Show task details."""
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)

        click.echo(f"Task: {task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Priority: {task.priority}")
        click.echo(f"  Status: {STATUS_LABELS[task.status]}")
        if task.project_id:
            click.echo(f"  Project: {task.project_id}")
        if task.description:
            click.echo(f"  Description: {task.description}")
        if task.start_date:
            click.echo(f"  Start: {task.start_date}")
        if task.due_date:
            click.echo(f"  Due: {task.due_date}")
        if task.completed_at:
            click.echo(f"  Completed: {task.completed_at}")
        if task.assigned_to:
            click.echo(f"  Assigned to: {task.assigned_to}")
        if task.depends_on:
            click.echo(f"  Depends on: {task.depends_on}")
        if task.estimated_hours is not None or task.actual_hours is not None:
            click.echo(f"  Hours: {task.actual_hours or 0} of {task.estimated_hours or '?'}")
        if task.tags:
            click.echo(f"  Tags: {', '.join(t.name for t in task.tags)}")

        comments = comments_mod.list_comments(db, task_id)
        if comments:
            click.echo("  Comments:")
            for c in comments:
                click.echo(f"    [{c.created_at}] {c.author or 'anonymous'}: {c.content}")

        events = activity_mod.list_for_entity(db, "task", task_id)
        if events:
            click.echo("  History:")
            for e in events:
                click.echo(f"    [{e.created_at}] {activity_mod.describe(e)}")


@task_group.command("status")
@click.argument("task_id")
@click.argument("status", type=click.Choice(STATUSES))
def task_status(task_id, status):
    """Set a task's status."""
    with _get_db() as db:
        task = tasks_mod.update_task_status(db, task_id, status)
        click.echo(f"Updated {task_id} status to {task.status}")


@task_group.command("update")
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("--priority", default=None, type=click.Choice(PRIORITIES))
@click.option("--start", default=None, help="Start date (YYYY-MM-DD)")
@click.option("--due", default=None, help="Due date (YYYY-MM-DD)")
@click.option("--assignee", default=None)
@click.option("--depends-on", default=None)
@click.option("--actual", type=float, default=None, help="Actual hours")
def task_update(task_id, title, priority, start, due, assignee, depends_on, actual):
    """Update task fields."""
    fields = {
        "title": title,
        "priority": priority,
        "start_date": start,
        "due_date": due,
        "assigned_to": assignee,
        "depends_on": depends_on,
        "actual_hours": actual,
    }
    fields = {k: v for k, v in fields.items() if v is not None}
    with _get_db() as db:
        task = tasks_mod.update_task(db, task_id, **fields)
        click.echo(f"Updated task: {task.id}")


@task_group.command("delete")
@click.argument("task_id")
def task_delete(task_id):
    """Delete a task and its comments."""
    with _get_db() as db:
        tasks_mod.delete_task(db, task_id)
        click.echo(f"Deleted task: {task_id}")


# ── Proposal Commands ─────────────────────────────────────────────────────────


@main.group("proposal")
def proposal_group():
    """Manage proposals."""
    pass


@proposal_group.command("add")
@click.argument("title")
@click.option("--client", default=None, help="Client name")
@click.option("--email", default=None, help="Client email")
@click.option("--value", type=float, default=None, help="Proposal value")
@click.option("--project", default=None, help="Project ID")
@click.option("--probability", type=click.IntRange(0, 100), default=0, help="Probability to close (%)")
@click.option("--today", type=DAY, default=None, help="Draft date (YYYY-MM-DD)")
def proposal_add(title, client, email, value, project, probability, today):
    """Create a new proposal in draft."""
    with _get_db() as db:
        proposal = proposals_mod.create_proposal(
            db,
            title,
            project_id=project,
            client_name=client,
            client_email=email,
            value=value,
            probability_to_close=probability,
            today=_day(today),
        )
        click.echo(f"Created proposal: {proposal.id}")
        click.echo(f"  Stage: {STAGE_LABELS[proposal.stage]}")


@proposal_group.command("list")
@click.option("--stage", default=None, type=click.Choice(STAGE_ORDER))
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def proposal_list(stage, json_output):
    """List proposals."""
    with _get_db() as db:
        proposals = proposals_mod.list_proposals(db, stage=stage)
        if json_output:
            click.echo(json.dumps([ser.proposal_dict(p) for p in proposals], indent=2))
            return
        if not proposals:
            click.echo("No proposals found.")
            return
        for p in proposals:
            client = f" for {p.client_name}" if p.client_name else ""
            click.echo(f"  [{STAGE_LABELS[p.stage]}] {p.id}: {p.title}{client} ({p.probability_to_close}%)")
        summary = proposals_mod.pipeline_summary(proposals)
        click.echo(
            f"  {summary['open']} open of {summary['total']}, "
            f"total value {summary['total_value']:,.2f}, "
            f"avg probability {summary['average_probability']:.0f}%"
        )


@proposal_group.command("show")
@click.argument("proposal_id")
def proposal_show(proposal_id):
    """Show a proposal and its stage timeline."""
    marks = {"completed": "✓", "current": "●", "upcoming": "○"}
    with _get_db() as db:
        p = proposals_mod.get_proposal(db, proposal_id)
        click.echo(f"Proposal: {p.id}")
        click.echo(f"  Title: {p.title}")
        if p.client_name:
            click.echo(f"  Client: {p.client_name}")
        if p.value is not None:
            click.echo(f"  Value: {p.value:,.2f}")
        click.echo(f"  Probability: {p.probability_to_close}%")
        click.echo("  Stages:")
        for step in stages.stage_progress(p.stage, p):
            when = f" ({step.stage_date})" if step.stage_date else ""
            click.echo(f"    {marks[step.state]} {step.label}{when}")
        prompt = stages.advance_prompt(p.stage)
        if prompt:
            click.echo(f"  Next: {prompt}")


@proposal_group.command("advance")
@click.argument("proposal_id")
@click.option("--today", type=DAY, default=None, help="Date to record (YYYY-MM-DD)")
@click.option("--notify", default=None, help="Slack channel to notify")
def proposal_advance(proposal_id, today, notify):
    """Advance a proposal to its next stage."""
    config = get_config()
    with _get_db() as db:
        p = proposals_mod.advance_proposal(db, proposal_id, _day(today))
        click.echo(f"Advanced {p.id} to {STAGE_LABELS[p.stage]}")

        if notify:
            try:
                slack_mod.send_message(
                    config.slack_bot_token,
                    notify,
                    f"Proposal {p.title} is now {STAGE_LABELS[p.stage]}",
                    slack_mod.format_stage_notification(p),
                )
                click.echo(f"  Slack notification sent to {notify}")
            except slack_mod.SlackError as e:
                click.echo(f"  Slack notification failed: {e}", err=True)


@proposal_group.command("stage")
@click.argument("proposal_id")
@click.argument("stage", type=click.Choice(STAGE_ORDER))
@click.option("--stamp", is_flag=True, help="Record today's date on the stage")
def proposal_stage(proposal_id, stage, stamp):
    """Set a proposal's stage directly (any stage, including backward)."""
    with _get_db() as db:
        p = proposals_mod.set_proposal_stage(
            db, proposal_id, stage, date.today() if stamp else None
        )
        click.echo(f"Set {p.id} stage to {STAGE_LABELS[p.stage]}")


@proposal_group.command("delete")
@click.argument("proposal_id")
def proposal_delete(proposal_id):
    """Delete a proposal."""
    with _get_db() as db:
        proposals_mod.delete_proposal(db, proposal_id)
        click.echo(f"Deleted proposal: {proposal_id}")


# ── Tag & Comment Commands ────────────────────────────────────────────────────


@main.group("tag")
def tag_group():
    """Manage tags."""
    pass


@tag_group.command("add")
@click.argument("name")
@click.option("--color", default="#6b7280")
def tag_add(name, color):
    """Create a tag."""
    with _get_db() as db:
        tag = tags_mod.create_tag(db, name, color)
        click.echo(f"Created tag #{tag.id}: {tag.name}")


@tag_group.command("list")
def tag_list():
    """List tags."""
    with _get_db() as db:
        tags = tags_mod.list_tags(db)
        if not tags:
            click.echo("No tags found.")
            return
        for t in tags:
            click.echo(f"  #{t.id} {t.name} ({t.color})")


@tag_group.command("attach")
@click.argument("task_id")
@click.argument("tag_id", type=int)
def tag_attach(task_id, tag_id):
    """Attach a tag to a task."""
    with _get_db() as db:
        tags = tags_mod.add_tag_to_task(db, task_id, tag_id)
        click.echo(f"{task_id} tags: {', '.join(t.name for t in tags)}")


@tag_group.command("detach")
@click.argument("task_id")
@click.argument("tag_id", type=int)
def tag_detach(task_id, tag_id):
    """Remove a tag from a task."""
    with _get_db() as db:
        tags = tags_mod.remove_tag_from_task(db, task_id, tag_id)
        remaining = ", ".join(t.name for t in tags) or "none"
        click.echo(f"{task_id} tags: {remaining}")


@main.group("comment")
def comment_group():
    """Manage task comments."""
    pass


@comment_group.command("add")
@click.argument("task_id")
@click.argument("content")
@click.option("--author", default=None)
def comment_add(task_id, content, author):
    """Comment on a task."""
    with _get_db() as db:
        comment = comments_mod.create_comment(db, task_id, content, author)
        click.echo(f"Added comment #{comment.id} to {task_id}")


@comment_group.command("list")
@click.argument("task_id")
def comment_list(task_id):
    """List comments on a task, newest first."""
    with _get_db() as db:
        comments = comments_mod.list_comments(db, task_id)
        if not comments:
            click.echo("No comments.")
            return
        for c in comments:
            click.echo(f"  #{c.id} [{c.created_at}] {c.author or 'anonymous'}: {c.content}")


# ── Views ─────────────────────────────────────────────────────────────────────


@main.command("activity")
@click.option("--limit", default=20, type=int, help="Number of entries")
@click.option("--entity", nargs=2, default=None, help="Entity type and id, e.g. task my-task")
def activity_cmd(limit, entity):
    """Show the activity feed."""
    with _get_db() as db:
        if entity:
            entries = activity_mod.list_for_entity(db, entity[0], entity[1])
        else:
            entries = activity_mod.list_recent(db, limit=limit)
        if not entries:
            click.echo("No activity.")
            return
        for e in entries:
            click.echo(f"  [{e.created_at}] {activity_mod.describe(e)}")


@main.command("metrics")
@click.option("--today", type=DAY, default=None, help="Reference day (YYYY-MM-DD)")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def metrics_cmd(today, json_output):
    """Show dashboard metrics."""
    config = get_config()
    m = asyncio.run(
        load_metrics(config.db_path, _day(today), config.upcoming_days, config.upcoming_limit)
    )
    if json_output:
        click.echo(json.dumps(ser.metrics_dict(m), indent=2))
        return

    click.echo(f"Projects: {m.total_projects}")
    click.echo(f"Tasks: {m.active_tasks} active, {m.completed_tasks} completed, {m.overdue_tasks} overdue")
    click.echo(f"Completion rate: {m.completion_rate:.1f}%")
    click.echo(f"Proposal conversion rate: {m.proposal_conversion_rate:.1f}%")
    click.echo("By priority: " + ", ".join(f"{p} {n}" for p, n in m.tasks_by_priority))
    click.echo("By status: " + ", ".join(f"{s} {n}" for s, n in m.tasks_by_status))
    if m.upcoming_deadlines:
        click.echo("Upcoming deadlines:")
        for t in m.upcoming_deadlines:
            click.echo(f"  {t.due_date} {t.id}: {t.title}")


@main.command("gantt")
@click.option("--year", type=int, default=None)
@click.option("--month", type=click.IntRange(1, 12), default=None)
@click.option("--project", default=None, help="Project ID")
def gantt_cmd(year, month, project):
    """Print a month timeline of dated tasks."""
    today = date.today()
    window_start, window_end = month_window(year or today.year, month or today.month)
    days = (window_end - window_start).days + 1
    with _get_db() as db:
        bars = gantt_rows(tasks_mod.list_tasks(db, project, with_tags=False), window_start, window_end)
    if not bars:
        click.echo("No tasks with dates in this month.")
        return
    click.echo(f"{window_start:%B %Y}")
    for bar in bars:
        line = [" "] * days
        for i in range(bar.offset_days, bar.offset_days + bar.span_days):
            line[i] = "█"
        left = "<" if bar.clamped_start else "|"
        right = ">" if bar.clamped_end else "|"
        click.echo(f"  {left}{''.join(line)}{right} {bar.task.title}")


# ── Slack Commands ────────────────────────────────────────────────────────────


@main.group("slack")
def slack_group():
    """Slack integration commands."""
    pass


@slack_group.command("send")
@click.argument("channel")
@click.argument("message")
def slack_send(channel, message):
    """Send a message to a Slack channel."""
    config = get_config()
    result = slack_mod.send_message(config.slack_bot_token, channel, message)
    click.echo(f"Message sent to {result.channel} (ts: {result.ts})")


@slack_group.command("digest")
@click.option("--channel", default=None, help="Slack channel (defaults to PT_SLACK_CHANNEL)")
@click.option("--today", type=DAY, default=None, help="Reference day (YYYY-MM-DD)")
def slack_digest(channel, today):
    """Post overdue and upcoming tasks to Slack."""
    config = get_config()
    channel = channel or config.slack_channel
    if not channel:
        click.echo("No channel specified and PT_SLACK_CHANNEL is not set.", err=True)
        sys.exit(1)

    day = _day(today)
    with _get_db() as db:
        tasks = tasks_mod.list_tasks(db, with_tags=False)
    overdue = [t for t in tasks if is_overdue(t, day)]
    upcoming = sorted(
        (t for t in tasks if is_upcoming(t, day, config.upcoming_days)), key=lambda t: t.due_date
    )
    blocks = slack_mod.format_deadline_digest(overdue, upcoming, day)
    result = slack_mod.send_message(
        config.slack_bot_token, channel, f"Deadline digest for {day.isoformat()}", blocks
    )
    click.echo(f"Digest posted to {result.channel}")


# ── Server Commands ───────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
def ui_command(host, port):
    """Serve the JSON API."""
    from project_tracker.web.app import run_server

    click.echo(f"Serving API at http://{host}:{port}/api")
    run_server(host=host, port=port)


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from project_tracker.mcp.server import mcp
    from project_tracker.mcp import prompts  # noqa: F401 - registers prompts

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
