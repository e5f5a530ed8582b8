"""MCP prompt templates for common workflows."""

from project_tracker.mcp.server import mcp


@mcp.prompt()
def plan_project(goal: str) -> str:
    """Generate a prompt to break a goal into scheduled tasks."""
    return (
        f"I need to plan the following project:\n\n"
        f"{goal}\n\n"
        f"Please break this down into concrete tasks. For each task:\n"
        f"1. Give it a clear, concise title\n"
        f"2. Pick a priority (low, medium, high or critical)\n"
        f"3. Suggest a start date and a due date\n"
        f"4. Note which task it depends on, if any\n\n"
        f"Then use create_project and create_task to record the plan."
    )


@mcp.prompt()
def status_report(project_id: str) -> str:
    """Generate a prompt for a project status report."""
    return (
        f"Please generate a status report for the '{project_id}' project.\n\n"
        f"Use project_stats and list_tasks with project_id='{project_id}', then provide:\n"
        f"1. Overall progress summary\n"
        f"2. Tasks currently in progress or in review\n"
        f"3. Overdue tasks and what is holding them up\n"
        f"4. Deadlines in the coming week\n"
        f"5. Any concerns or risks"
    )


@mcp.prompt()
def pipeline_review() -> str:
    """Generate a prompt to review the proposal pipeline."""
    return (
        "Please review my proposal pipeline.\n\n"
        "Use pipeline_summary and list_proposals, then provide:\n"
        "1. How much value sits in each stage\n"
        "2. Proposals that look stuck and the next action for each\n"
        "3. Which proposals are most likely to close soon\n"
        "4. Approved proposals still waiting on a signed contract"
    )


@mcp.prompt()
def weekly_plan() -> str:
    """Generate a prompt to plan the coming week."""
    return (
        "Help me plan my week.\n\n"
        "Use dashboard_metrics to see overdue tasks and upcoming deadlines, "
        "and gantt for the current month. Then suggest what to focus on each day, "
        "starting with overdue and critical work. Keep it short."
    )
