from __future__ import annotations

MAX_SUMMARY_CHARS = 10_000
MAX_CONTEXT_CHARS = 100_000
MAX_NEXT_STEPS_CHARS = 5_000


class ValidationError(ValueError):
    """Rejected input. Raised before the store is touched; ``field`` names the offending input."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


def require_text(field: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f"{field} is required and cannot be empty")
    return value


def check_length(field: str, value: str | None, limit: int) -> None:
    if value is not None and len(value) > limit:
        raise ValidationError(
            field,
            f"{field} exceeds maximum length of {limit} characters (got {len(value)})",
        )


def validate_snapshot_fields(
    summary: object,
    rendered_context: object,
    next_steps: str | None,
    token_estimate: int | None,
) -> None:
    check_length("summary", require_text("summary", summary), MAX_SUMMARY_CHARS)
    check_length("context", require_text("context", rendered_context), MAX_CONTEXT_CHARS)
    check_length("next_steps", next_steps, MAX_NEXT_STEPS_CHARS)
    if token_estimate is not None and token_estimate < 0:
        raise ValidationError("token_estimate", "token_estimate must be non-negative")


def query_terms(query: object) -> list[str]:
    """Lowercase, trim and split a search query. Empty after normalization is an error."""
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("query", "query is required and cannot be empty")
    return query.strip().lower().split()
