"""Value objects for the Task aggregate.

Immutable, validated domain primitives. All validation occurs at
construction time and raises ``ValidationError`` naming the offending field.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from hearth.foundation.domain.exceptions import ValidationError

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
MAX_TAGS = 10
TAG_MAX_LENGTH = 50
REASON_MAX_LENGTH = 500


class TaskStatus(StrEnum):
    """Task lifecycle states.

    ACTIVE <-> COMPLETED, either -> DELETED (terminal).
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class TaskTitle:
    """Task title, stripped, 1-200 characters.

    Attributes:
        value: The validated, stripped title.
    """

    value: str

    def __post_init__(self) -> None:
        stripped = self.value.strip() if isinstance(self.value, str) else ""
        if not stripped:
            raise ValidationError("title", "must not be empty")
        if len(stripped) > TITLE_MAX_LENGTH:
            raise ValidationError(
                "title",
                f"must be at most {TITLE_MAX_LENGTH} characters (got {len(stripped)})",
            )
        object.__setattr__(self, "value", stripped)


@dataclass(frozen=True, slots=True)
class TaskDescription:
    """Optional free text, at most 1000 characters. Empty means no description."""

    value: str | None

    def __post_init__(self) -> None:
        if self.value is None:
            return
        if not isinstance(self.value, str):
            raise ValidationError("description", "must be a string")
        stripped = self.value.strip()
        if len(stripped) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                "description",
                f"must be at most {DESCRIPTION_MAX_LENGTH} characters (got {len(stripped)})",
            )
        object.__setattr__(self, "value", stripped or None)


@dataclass(frozen=True, slots=True)
class TaskTags:
    """Up to 10 distinct tags of 1-50 characters each.

    Tags are stripped and deduplicated keeping first-seen order.
    """

    values: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.values, (tuple, list)):
            raise ValidationError("tags", "must be a list of strings")
        seen: dict[str, None] = {}
        for tag in self.values:
            stripped = tag.strip() if isinstance(tag, str) else ""
            if not stripped:
                raise ValidationError("tags", "tags must not be empty")
            if len(stripped) > TAG_MAX_LENGTH:
                raise ValidationError(
                    "tags",
                    f"tag must be at most {TAG_MAX_LENGTH} characters",
                    tag=stripped[:TAG_MAX_LENGTH],
                )
            seen.setdefault(stripped, None)
        if len(seen) > MAX_TAGS:
            raise ValidationError("tags", f"at most {MAX_TAGS} tags allowed (got {len(seen)})")
        object.__setattr__(self, "values", tuple(seen))


@dataclass(frozen=True, slots=True)
class DeletionReason:
    """Optional note on why a task was deleted, at most 500 characters."""

    value: str | None

    def __post_init__(self) -> None:
        if self.value is None:
            return
        if not isinstance(self.value, str):
            raise ValidationError("reason", "must be a string")
        if len(self.value) > REASON_MAX_LENGTH:
            raise ValidationError(
                "reason",
                f"must be at most {REASON_MAX_LENGTH} characters",
            )
