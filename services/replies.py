"""Reply texts, inline keyboards, and report formatting (MarkdownV2)."""

from __future__ import annotations

import re
from datetime import datetime

from models.task import Task, TaskStatus
from models.user import User

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape(text: str) -> str:
    """Escape MarkdownV2 control characters in user-visible text."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def bold(text: str) -> str:
    return f"*{escape(text)}*"


# ── Static replies ─────────────────────────────────────────────────────────

WELCOME = escape("Welcome! Choose a command:")
HELP = escape(
    "Available commands:\n"
    "/start - Start working with the bot\n"
    "/help - Show this list of commands\n\n"
    "Use the buttons under the /start message to create tasks, "
    "see a user's tasks, your latest tasks, and your statistics."
)
UNKNOWN_COMMAND = escape("Unknown command. Use /help for the list of commands.")
GENERIC_ERROR = escape("Something went wrong. Please try again.")

ASK_DESCRIPTION = escape("Enter the task description:")
ASK_ASSIGNEE_CONTACT = escape("Send the contact of the person the task should be assigned to:")
ASK_USER_CONTACT = escape("Send the user's contact:")
ASK_INTERVAL = escape("Enter the reminder interval in minutes:")
INVALID_CONTACT = escape("Invalid link. Send a contact from your contact list.")
USER_NOT_FOUND = escape("No user with this id was found.")
INVALID_INTERVAL = escape("Invalid interval. Enter a whole number of minutes, up to one year (525600).")
TASK_CREATED = escape("Task created!")
TASK_CREATE_FAILED = escape("Failed to create the task. Please start over.")
USER_CHECK_FAILED = escape("Failed to check the user. Please try again.")
TASKS_FETCH_FAILED = escape("Failed to load tasks. Please try again.")
STATISTICS_FAILED = escape("Failed to load statistics. Please try again.")

TASK_NOT_FOUND = escape("Task not found.")
TASK_APPROVED = escape("Task approved!")
TASK_REJECTED = escape("Task rejected.")
TASK_ALREADY_APPROVED = escape("Task has already been approved.")
TASK_ALREADY_REJECTED = escape("Task has already been rejected.")
TASK_UPDATE_FAILED = escape("Failed to process the task. Please try again.")
NO_OWN_TASKS = escape("You have not created any tasks.")

CALLBACK_ACK = "Command processed"

STATUS_LABELS = {
    TaskStatus.APPROVED.value: "Approved",
    TaskStatus.REJECTED.value: "Rejected",
    TaskStatus.PENDING.value: "Pending",
}


# ── Keyboards ──────────────────────────────────────────────────────────────

def _button(text: str, callback_data: str, style: str = "primary") -> dict:
    return {"text": text, "callbackData": callback_data, "style": style}


def main_menu_keyboard() -> list[list[dict]]:
    return [
        [
            _button("Create task", "create_task"),
            _button("View user's tasks", "check_user_tasks"),
        ],
        [_button("View latest tasks", "watch_tasks")],
        [_button("View statistics", "watch_statistics")],
    ]


def decision_keyboard(task_id: str) -> list[list[dict]]:
    return [
        [
            _button("Approve", f"approve_{task_id}"),
            _button("Reject", f"reject_{task_id}", style="attention"),
        ]
    ]


# ── Formatted replies ──────────────────────────────────────────────────────

def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, STATUS_LABELS[TaskStatus.PENDING.value])


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def no_user_tasks(user: User) -> str:
    return escape(f"{user.display_name} has no tasks.")


def format_task_report(title: str, tasks: list[Task], users: dict[str, User]) -> str:
    """Numbered report: description, assignee, status, and creation time per task."""
    lines = [f"📝 {bold(title)}", ""]
    for n, task in enumerate(tasks, start=1):
        description = task.text or task.file_caption or "No description"
        assignee = users.get(task.assignee_id)
        assignee_name = assignee.display_name if assignee else "Unknown user"
        lines.extend([
            bold(f"Task {n}:"),
            f"{bold('Description:')} {escape(description)}",
            f"{bold('Assignee:')} {escape(assignee_name)}",
            f"{bold('Status:')} {escape(status_label(task.status))}",
            f"{bold('Created:')} {escape(format_timestamp(task.created_at))}",
            "",
        ])
    return "\n".join(lines).rstrip("\n")


def format_statistics(total: int, approved: int, rejected: int, pending: int) -> str:
    return "\n".join([
        f"📊 {bold('Statistics for your tasks:')}",
        "",
        escape(f"• Tasks created: {total}"),
        escape(f"• Approved: {approved}"),
        escape(f"• Rejected: {rejected}"),
        escape(f"• Pending: {pending}"),
    ])


def format_reminder(task: Task) -> str:
    """Approve/reject prompt sent to the assignee."""
    lines = [
        f"📨 {bold('New task awaiting approval')}",
        "",
        f"{bold('From:')} {escape(task.creator_name)}",
    ]
    if task.text:
        lines.append(f"{bold('Task description:')} {escape(task.text)}")
    if task.file_id:
        lines.append(f"{bold('File description:')} {escape(task.file_caption or 'No description')}")
    return "\n".join(lines)
