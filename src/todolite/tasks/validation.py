# src/todolite/tasks/validation.py

"""
Validation and sanitization of task input.

Two separate passes:
- validate_* never mutates; it produces user-facing errors and warnings,
- sanitize_* always returns a safe value; that value is what gets persisted.

Callers that want specific error messages validate first, then sanitize.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .task_models import (
    CATEGORY_MAX_LENGTH,
    DEFAULT_CATEGORY,
    TEXT_MAX_LENGTH,
    UPDATABLE_FIELDS,
    Priority,
)

_PRIORITY_VALUES = tuple(p.value for p in Priority)

# Plain punctuation/alphanumerics; anything else only produces a warning.
_TEXT_PATTERN = re.compile(r"""^[a-zA-Z0-9\s\-_.,!?@#$%^&*()+=\[\]{}|\\:;"'<>~`]+$""")
_TASK_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_ANGLE_BRACKETS = re.compile(r"[<>]")
# Lone surrogates cannot be encoded as UTF-8, so they can never be persisted.
_SURROGATES = re.compile(r"[\ud800-\udfff]")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def of(cls, errors: list[str], warnings: list[str]) -> ValidationResult:
        return cls(is_valid=not errors, errors=list(errors), warnings=list(warnings))


def _check_text(text: Any, errors: list[str], warnings: list[str]) -> None:
    if not isinstance(text, str) or not text:
        errors.append("Task text is required and must be a string")
        return
    clean = text.strip()
    if not clean:
        errors.append("Task text cannot be empty")
    elif _SURROGATES.search(clean):
        errors.append("Task text contains characters that cannot be stored")
    elif len(clean) > TEXT_MAX_LENGTH:
        errors.append(f"Task text cannot exceed {TEXT_MAX_LENGTH} characters")
    elif not _TEXT_PATTERN.match(clean):
        warnings.append("Task text contains unusual characters")


def _check_priority(priority: Any, errors: list[str]) -> None:
    if priority not in _PRIORITY_VALUES:
        errors.append(f"Priority must be one of: {', '.join(_PRIORITY_VALUES)}")


def _check_category(category: Any, errors: list[str]) -> None:
    if not isinstance(category, str):
        errors.append("Category must be a string")
    elif _SURROGATES.search(category):
        errors.append("Category contains characters that cannot be stored")
    elif len(category) > CATEGORY_MAX_LENGTH:
        errors.append(f"Category cannot exceed {CATEGORY_MAX_LENGTH} characters")


def validate_task(candidate: Mapping[str, Any]) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(candidate, Mapping):
        return ValidationResult.of(["Task data is required"], [])

    _check_text(candidate.get("text"), errors, warnings)

    priority = candidate.get("priority")
    if priority is not None:
        _check_priority(priority, errors)

    category = candidate.get("category")
    if category is not None:
        _check_category(category, errors)

    return ValidationResult.of(errors, warnings)


def validate_update(fields: Mapping[str, Any]) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(fields, Mapping):
        return ValidationResult.of(["Update data is required"], [])

    invalid = [k for k in fields if k not in UPDATABLE_FIELDS]
    if invalid:
        errors.append(f"Invalid update fields: {', '.join(sorted(map(str, invalid)))}")

    if "text" in fields:
        _check_text(fields["text"], errors, warnings)

    if "completed" in fields and not isinstance(fields["completed"], bool):
        errors.append("Completed must be a boolean value")

    if "priority" in fields:
        _check_priority(fields["priority"], errors)

    if "category" in fields:
        _check_category(fields["category"], errors)

    if "order" in fields:
        order = fields["order"]
        if isinstance(order, bool) or not isinstance(order, int) or order < 0:
            errors.append("Order must be a non-negative integer")

    return ValidationResult.of(errors, warnings)


def validate_task_id(task_id: Any) -> ValidationResult:
    errors: list[str] = []
    if not isinstance(task_id, str) or not task_id:
        return ValidationResult.of(["Task ID is required and must be a string"], [])
    if len(task_id) < 5 or len(task_id) > 50:
        errors.append("Task ID must be between 5 and 50 characters")
    if not _TASK_ID_PATTERN.match(task_id):
        errors.append("Task ID contains invalid characters")
    return ValidationResult.of(errors, [])


def sanitize_text(text: Any) -> str:
    if not isinstance(text, str):
        return ""
    clean = " ".join(_SURROGATES.sub("", _ANGLE_BRACKETS.sub("", text)).split())
    return clean[:TEXT_MAX_LENGTH].rstrip()


def sanitize_priority(priority: Any) -> str:
    return Priority.parse(priority).value


def sanitize_category(category: Any) -> str:
    if not isinstance(category, str):
        return DEFAULT_CATEGORY
    clean = _SURROGATES.sub("", category).strip()[:CATEGORY_MAX_LENGTH].rstrip()
    return clean or DEFAULT_CATEGORY


def sanitize_task(candidate: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a cleaned record with text, priority and category always present.

    `completed` is carried over (as bool) only when the candidate has it.
    sanitize_task(sanitize_task(x)) == sanitize_task(x).
    """
    if not isinstance(candidate, Mapping):
        candidate = {}

    sanitized: dict[str, Any] = {
        "text": sanitize_text(candidate.get("text")),
        "priority": sanitize_priority(candidate.get("priority")),
        "category": sanitize_category(candidate.get("category")),
    }
    if "completed" in candidate:
        sanitized["completed"] = bool(candidate["completed"])
    return sanitized
