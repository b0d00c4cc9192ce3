"""Structural validation of task records"""

import logging
from typing import List

from ..tasks.models import DifficultyLevel, Task, TaskType
from .models import IssueSeverity, ValidationCode, ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)

MIN_PROMPT_LENGTH = 50
MAX_PROMPT_LENGTH = 10000
MIN_DESCRIPTION_LENGTH = 20


class TaskValidator:
    """
    Hard errors for missing required fields, soft warnings for weak
    content. Any error keeps a task in DRAFT.
    """

    REQUIRED_FIELDS = [
        ("id", lambda t: t.id),
        ("name", lambda t: t.name),
        ("description", lambda t: t.description),
        ("content.prompt", lambda t: t.content.prompt),
        ("category", lambda t: t.category),
        ("task_type", lambda t: t.task_type),
        ("difficulty_level", lambda t: t.difficulty_level),
    ]

    def validate(self, task: Task) -> ValidationResult:
        result = ValidationResult()
        result.merge(self.required_field_issues(task))
        result.merge(self.value_issues(task))
        result.merge(self.content_warnings(task))
        if result.errors:
            logger.debug(f"Task {task.id} has {len(result.errors)} validation errors")
        return result

    def required_field_issues(self, task: Task) -> List[ValidationIssue]:
        issues = []
        for field_name, getter in self.REQUIRED_FIELDS:
            value = getter(task)
            if value is None or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field_name,
                    code=ValidationCode.REQUIRED_FIELD,
                    message=f"'{field_name}' is required",
                ))
        return issues

    def value_issues(self, task: Task) -> List[ValidationIssue]:
        issues = []
        if task.difficulty_level is not None and not isinstance(task.difficulty_level, DifficultyLevel):
            issues.append(ValidationIssue(
                field="difficulty_level",
                code=ValidationCode.INVALID_VALUE,
                message=f"Unknown difficulty level '{task.difficulty_level}'",
            ))
        if task.task_type is not None and not isinstance(task.task_type, TaskType):
            issues.append(ValidationIssue(
                field="task_type",
                code=ValidationCode.INVALID_VALUE,
                message=f"Unknown task type '{task.task_type}'",
            ))
        if task.version < 1:
            issues.append(ValidationIssue(
                field="version",
                code=ValidationCode.INVALID_VALUE,
                message="Version must be a positive integer",
            ))
        return issues

    def content_warnings(self, task: Task) -> List[ValidationIssue]:
        warnings = []
        prompt = task.content.prompt.strip()

        if prompt and len(prompt) < MIN_PROMPT_LENGTH:
            warnings.append(_warning(
                "content.prompt", ValidationCode.TOO_SHORT,
                f"Prompt is shorter than {MIN_PROMPT_LENGTH} characters",
            ))
        if len(prompt) > MAX_PROMPT_LENGTH:
            warnings.append(_warning(
                "content.prompt", ValidationCode.TOO_LONG,
                f"Prompt is longer than {MAX_PROMPT_LENGTH} characters",
            ))
        if task.description.strip() and len(task.description.strip()) < MIN_DESCRIPTION_LENGTH:
            warnings.append(_warning(
                "description", ValidationCode.TOO_SHORT,
                f"Description is shorter than {MIN_DESCRIPTION_LENGTH} characters",
            ))
        if not task.content.examples:
            warnings.append(_warning(
                "content.examples", ValidationCode.MISSING_EXAMPLES, "No examples provided",
            ))
        if not task.content.evaluation_criteria:
            warnings.append(_warning(
                "content.evaluation_criteria", ValidationCode.MISSING_CRITERIA,
                "No evaluation criteria provided",
            ))
        if not task.tags:
            warnings.append(_warning("tags", ValidationCode.MISSING_TAGS, "No tags provided"))

        for index, example in enumerate(task.content.examples):
            if not example.input.strip() or not example.output.strip():
                warnings.append(_warning(
                    f"content.examples[{index}]", ValidationCode.INCONSISTENT_EXAMPLE,
                    "Example is missing an input or an output",
                ))
        return warnings


def _warning(field_name: str, code: ValidationCode, message: str) -> ValidationIssue:
    return ValidationIssue(field=field_name, code=code, message=message, severity=IssueSeverity.WARNING)
