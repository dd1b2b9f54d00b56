"""Field-level validation for task and registration input."""

import re
from datetime import datetime, timedelta
from typing import Optional

from taskgate.auth.passwords import MAX_PASSWORD_BYTES
from taskgate.engine.errors import ValidationFailure
from taskgate.models.task import TaskDraft

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 5000
TAGS_MAX_LENGTH = 500
PASSWORD_MIN_LENGTH = 8

# Grace period so clients in other timezones can still pick "today"
DUE_DATE_GRACE = timedelta(days=1)

TAG_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def validate_title(title: Optional[str]) -> str:
    value = (title or "").strip()
    if not value:
        raise ValidationFailure("Title is required", field="title")
    if not TITLE_MIN_LENGTH <= len(value) <= TITLE_MAX_LENGTH:
        raise ValidationFailure(
            f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters",
            field="title",
        )
    return value


def validate_description(description: Optional[str]) -> Optional[str]:
    if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationFailure(
            f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters",
            field="description",
        )
    return description


def validate_due_date(due_date: Optional[datetime], now: datetime) -> Optional[datetime]:
    if due_date is not None and due_date < now - DUE_DATE_GRACE:
        raise ValidationFailure("Due date cannot be in the past", field="dueDate")
    return due_date


def validate_tags(tags: Optional[str]) -> Optional[str]:
    """Normalize comma-separated tags; blank input clears them."""
    if tags is None or not tags.strip():
        return None
    if len(tags) > TAGS_MAX_LENGTH:
        raise ValidationFailure(
            f"Tags must not exceed {TAGS_MAX_LENGTH} characters", field="tags"
        )
    cleaned = [tag.strip() for tag in tags.split(",") if tag.strip()]
    for tag in cleaned:
        if not TAG_PATTERN.match(tag):
            raise ValidationFailure(
                f"Invalid tag '{tag}': only letters, digits, '-' and '_' are allowed",
                field="tags",
            )
    return ",".join(cleaned)


def validate_draft(draft: TaskDraft, now: datetime) -> TaskDraft:
    """Validate and normalize a task draft."""
    return draft.model_copy(
        update={
            "title": validate_title(draft.title),
            "description": validate_description(draft.description),
            "due_date": validate_due_date(draft.due_date, now),
            "tags": validate_tags(draft.tags),
        }
    )


def validate_email(email: Optional[str]) -> str:
    value = (email or "").strip()
    if not EMAIL_PATTERN.match(value):
        raise ValidationFailure("Invalid email address", field="email")
    return value


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationFailure(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters", field="password"
        )
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValidationFailure(
            f"Password must not exceed {MAX_PASSWORD_BYTES} bytes", field="password"
        )
    return password


def validate_name(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned or len(cleaned) > 100:
        raise ValidationFailure(f"{field} must be between 1 and 100 characters", field=field)
    return cleaned


def slugify(name: str) -> str:
    """Lowercase URL-safe slug; falls back to ``org`` for symbol-only names."""
    slug = SLUG_PATTERN.sub("-", name.lower()).strip("-")
    return slug[:40] or "org"
