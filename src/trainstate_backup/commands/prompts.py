"""Interactive confirmation prompts."""

import questionary
from questionary import Style

from ..models.snapshot import SnapshotSummary

custom_style = Style(
    [
        ("qmark", "fg:#673ab7 bold"),
        ("question", "bold"),
        ("answer", "fg:#f44336 bold"),
        ("pointer", "fg:#673ab7 bold"),
        ("highlighted", "fg:#673ab7 bold"),
        ("instruction", ""),
        ("text", ""),
    ]
)


def describe_summary(summary: SnapshotSummary) -> str:
    return (
        f"{summary.created_at:%Y-%m-%d %H:%M} from {summary.device_name} "
        f"({summary.workout_count} workouts, {summary.category_count} categories)"
    )


async def confirm_replace(source: str) -> bool:
    """Ask before local data is replaced by a restore or import."""
    answer = await questionary.confirm(
        f"Replace all local workouts and categories with {source}? "
        "This cannot be undone.",
        default=False,
        style=custom_style,
    ).ask_async()
    return bool(answer)


async def confirm_delete(summaries: list[SnapshotSummary]) -> bool:
    """Ask before backups are deleted from remote storage."""
    if len(summaries) == 1:
        message = f"Delete the backup of {describe_summary(summaries[0])}?"
    else:
        message = f"Delete {len(summaries)} backups?"
    answer = await questionary.confirm(message, default=False, style=custom_style).ask_async()
    return bool(answer)


async def choose_snapshot(summaries: list[SnapshotSummary], action: str) -> str | None:
    """Let the user pick a backup when none was given on the command line."""
    answer = await questionary.select(
        f"Which backup do you want to {action}?",
        choices=[
            questionary.Choice(describe_summary(s), s.snapshot_id) for s in summaries
        ],
        style=custom_style,
    ).ask_async()
    return answer
