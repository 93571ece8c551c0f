"""
Field validation for mutating operations.

Each validator returns a list of FieldError; callers pass it to ensure_valid(),
which raises ValidationFailed when anything was collected.
"""

from dataclasses import dataclass, asdict
from typing import List, Optional

from inkpress.exceptions import ValidationFailed
from inkpress.models import ArticleStatus, ReactionType

TITLE_MIN, TITLE_MAX = 3, 200
CONTENT_MIN = 10
CATEGORY_MIN, CATEGORY_MAX = 3, 60
COMMENT_MAX = 5000


@dataclass
class FieldError:
    field: str
    message: str


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def ensure_valid(errors: List[FieldError]) -> None:
    if errors:
        raise ValidationFailed([asdict(e) for e in errors])


def parse_status(raw: Optional[str]) -> ArticleStatus:
    """Parse a status string case-insensitively, raising ValidationFailed."""
    try:
        return ArticleStatus(raw.strip().upper())
    except (AttributeError, ValueError):
        raise ValidationFailed([asdict(FieldError("status", f"Invalid status: {raw}"))])


def parse_reaction_type(raw: Optional[str]) -> ReactionType:
    try:
        return ReactionType(raw.strip().upper())
    except (AttributeError, ValueError):
        raise ValidationFailed([asdict(FieldError("type", f"Invalid reaction type: {raw}"))])


def _check_title(title: str, errors: List[FieldError]) -> None:
    if not TITLE_MIN <= len(title.strip()) <= TITLE_MAX:
        errors.append(FieldError("title", f"Title must be between {TITLE_MIN} and {TITLE_MAX} characters"))


def _check_content(content: str, errors: List[FieldError]) -> None:
    if len(content.strip()) < CONTENT_MIN:
        errors.append(FieldError("content", f"Content must have at least {CONTENT_MIN} characters"))


def _check_category(category: str, errors: List[FieldError]) -> None:
    if not CATEGORY_MIN <= len(category.strip()) <= CATEGORY_MAX:
        errors.append(
            FieldError("category", f"Category must be between {CATEGORY_MIN} and {CATEGORY_MAX} characters")
        )


def _check_status(status: str, errors: List[FieldError]) -> None:
    if status.strip().upper() not in ArticleStatus.__members__:
        errors.append(FieldError("status", f"Invalid status: {status}"))


def validate_article_create(
    title: Optional[str],
    content: Optional[str],
    category: Optional[str],
    status: Optional[str],
) -> List[FieldError]:
    errors: List[FieldError] = []

    if is_blank(title):
        errors.append(FieldError("title", "Title is required"))
    else:
        _check_title(title, errors)

    if is_blank(content):
        errors.append(FieldError("content", "Content is required"))
    else:
        _check_content(content, errors)

    if is_blank(category):
        errors.append(FieldError("category", "Category is required"))
    else:
        _check_category(category, errors)

    if is_blank(status):
        errors.append(FieldError("status", "Status is required"))
    else:
        _check_status(status, errors)

    return errors


def validate_article_update(
    title: Optional[str],
    content: Optional[str],
    category: Optional[str],
    status: Optional[str],
) -> List[FieldError]:
    """Blank fields mean "no change" and are not checked."""
    errors: List[FieldError] = []
    if not is_blank(title):
        _check_title(title, errors)
    if not is_blank(content):
        _check_content(content, errors)
    if not is_blank(category):
        _check_category(category, errors)
    if not is_blank(status):
        _check_status(status, errors)
    return errors


def validate_comment(content: Optional[str]) -> List[FieldError]:
    errors: List[FieldError] = []
    if is_blank(content):
        errors.append(FieldError("content", "Content is required"))
    elif len(content.strip()) > COMMENT_MAX:
        errors.append(FieldError("content", f"Content must have at most {COMMENT_MAX} characters"))
    return errors


def validate_category_name(name: Optional[str]) -> List[FieldError]:
    errors: List[FieldError] = []
    if is_blank(name):
        errors.append(FieldError("name", "Category name is required"))
    elif not CATEGORY_MIN <= len(name.strip()) <= CATEGORY_MAX:
        errors.append(
            FieldError("name", f"Category name must be between {CATEGORY_MIN} and {CATEGORY_MAX} characters")
        )
    return errors
