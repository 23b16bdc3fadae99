"""Build Task objects from session history, task files, and ad-hoc topics."""

import time
from pathlib import Path

import frontmatter

from council.models import Task
from council.session_client import SessionMessage

DEFAULT_GOAL = "Review project state"
UNKNOWN_GOAL = "Unknown goal"
_CONTEXT_CHARS = 2000


def new_task_id(prefix: str = "task") -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


def current_goal(history: list[SessionMessage]) -> str:
    """Text of the most recent user message, or the generic review goal."""
    for message in reversed(history):
        if message.role == "user":
            return message.text or UNKNOWN_GOAL
    return DEFAULT_GOAL


def task_from_history(history: list[SessionMessage], session_title: str = "") -> Task:
    """Derive a Task from a session whose newest message is an assistant turn."""
    latest = history[-1] if history else None
    context_parts = []
    if session_title:
        context_parts.append(f"Session: {session_title}")
    if latest is not None and latest.text:
        reply = latest.text
        if len(reply) > _CONTEXT_CHARS:
            reply = reply[:_CONTEXT_CHARS] + "..."
        context_parts.append(f"Latest assistant turn:\n{reply}")
    return Task(
        id=f"turn-{latest.id}" if latest is not None else new_task_id("turn"),
        description=current_goal(history),
        context="\n\n".join(context_parts) or "Session history analyzed",
        files=(),
        created_at=time.time(),
    )


def task_from_topic(topic: str, context: str = "Manual debate triggered by user") -> Task:
    return Task(
        id=new_task_id("manual"),
        description=topic,
        context=context,
        files=(),
        created_at=time.time(),
    )


def load_task_file(file_path: Path) -> Task:
    """Parse a markdown task file with optional YAML frontmatter.

    The body becomes the description. Recognised frontmatter keys:
    ``id`` (str), ``context`` (str), ``files`` (list or comma-separated str).
    """
    post = frontmatter.load(str(file_path))
    description = post.content.strip()
    if not description:
        raise ValueError(f"Task file has no description: {file_path}")

    files = post.metadata.get("files", [])
    if isinstance(files, str):
        files = [f.strip() for f in files.split(",") if f.strip()]

    return Task(
        id=str(post.metadata.get("id") or new_task_id("file")),
        description=description,
        context=str(post.metadata.get("context", f"Loaded from {file_path.name}")),
        files=tuple(str(f) for f in files),
        created_at=time.time(),
    )
