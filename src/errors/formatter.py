"""Error formatting utilities.

This module provides:
- OrderDeskError exception class for application errors
- Error formatting for log lines and operator display
"""

from dataclasses import dataclass, field

from src.errors.registry import USER_SAFE_MESSAGE, get_error


@dataclass
class OrderDeskError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Operator-facing error message.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code}: {self.message}"

    @property
    def user_message(self) -> str:
        """Graceful, non-technical text safe to show an end customer."""
        return USER_SAFE_MESSAGE

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "OrderDeskError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                The special key 'details' populates the details field.

        Returns:
            OrderDeskError instance with formatted message.
        """
        details = kwargs.pop("details", {})
        if not isinstance(details, dict):
            details = {}

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                details=details,
            )

        message = error_def.message_template
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            pass

        return cls(
            code=error_def.code,
            message=message,
            remediation=error_def.remediation,
            is_retryable=error_def.is_retryable,
            details=details,
        )


def format_error(error: OrderDeskError, include_remediation: bool = True) -> str:
    """Format error for operator display or logs.

    Args:
        error: The OrderDeskError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string.
    """
    lines = [f"{error.code}: {error.message}"]
    if error.details:
        context = ", ".join(f"{k}={v}" for k, v in sorted(error.details.items()))
        lines.append(f"  Context: {context}")
    if include_remediation:
        lines.append(f"  Action: {error.remediation}")
    return "\n".join(lines)
