"""Markdown formatting for daily task logs."""

import re
from collections.abc import Sequence
from datetime import datetime

from ..models.config import TEMPLATE, TemplateItem

# Two or more plain spaces separate implicit list items
DOUBLE_SPACE_RE = re.compile(r" {2,}")
BULLET_RE = re.compile(r"^[*\-+]\s")
ORDERED_RE = re.compile(r"^\d+\.\s")


def ordinal(day: int) -> str:
    """Return the day of month with its English suffix (1st, 2nd, 11th)."""
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_heading_date(when: datetime) -> str:
    """Format as e.g. 'Tuesday, May 20th, 2025'."""
    return f"{when:%A}, {when:%B} {ordinal(when.day)}, {when.year}"


def format_clock(when: datetime) -> str:
    """Format as e.g. '3:05 PM'."""
    hour = when.hour % 12 or 12
    meridiem = "AM" if when.hour < 12 else "PM"
    return f"{hour}:{when.minute:02d} {meridiem}"


def format_line(line: str) -> str:
    """Normalize one answer line into a markdown list line."""
    if BULLET_RE.match(line):
        return line
    if ORDERED_RE.match(line):
        return f"**{line}**"
    return f"- {line}"


def format_section_lines(answer: str) -> list[str]:
    """Split a trimmed answer into formatted list lines.

    Runs of double spaces become new bullet items; blank lines are dropped.
    """
    text = DOUBLE_SPACE_RE.sub("\n- ", answer.strip())
    lines = []
    for raw in text.split("\n"):
        line = raw.strip()
        if line:
            lines.append(format_line(line))
    return lines


def format_log(
    answers: Sequence[str],
    now: datetime | None = None,
    template: Sequence[TemplateItem] = TEMPLATE,
) -> str:
    """Build the markdown document for one day's answers.

    Args:
        answers: Raw answers, positionally matching ``template``. Missing or
            blank answers produce no section.
        now: Time used for the heading date and the footer (defaults to now)
        template: Questions and section titles, in order

    Returns:
        Markdown text ending with a newline
    """
    now = now or datetime.now()
    parts = [f"# Task Cache: {format_heading_date(now)}\n\n"]

    for index, item in enumerate(template):
        answer = answers[index] if index < len(answers) else ""
        if not answer or not answer.strip():
            continue
        parts.append(f"## {item.section_title}\n")
        for line in format_section_lines(answer):
            parts.append(f"{line}\n")
        parts.append("\n")

    parts.append(f"---\n*Cached at {format_clock(now)}*\n")
    return "".join(parts)
