"""
System-wide custom error types.
"""


class ConfigTemplateError(Exception):
    """Base class for all errors raised by the template engine."""


class ConfigurationError(ConfigTemplateError, ValueError):
    """
    Raised when an instance configuration or a variable declaration is malformed.
    These are fatal to instance setup and propagate to the host.
    """
    def __init__(self, message: str, field: str = "", error_details: str = ""):
        """
        Initializes the ConfigurationError.

        Args:
            message: A high-level error message.
            field: The configuration key the problem was found in, if known.
            error_details: Specific details from the underlying validator, if available.
        """
        full_message = message
        if field:
            full_message += f"\nField: '{field}'"
        if error_details:
            full_message += f"\nDetails: {error_details}"
        super().__init__(full_message)
        self.message = message
        self.field = field
        self.error_details = error_details


class ExpressionEvaluationError(ConfigTemplateError):
    """
    Raised inside the expression evaluator when an expression fails to parse,
    references an unbound name, or raises at runtime.
    The evaluator catches it and substitutes the error sentinel.
    """
    def __init__(self, message: str, expression: str = "", error_details: str = ""):
        """
        Initializes the ExpressionEvaluationError.

        Args:
            message: A high-level error message describing the evaluation failure.
            expression: The expression source being evaluated when the error occurred.
            error_details: Specific details about the error (e.g., from the interpreter).
        """
        full_message = f"{message}"
        if expression:
            full_message += f"\nExpression: '{expression}'"
        if error_details:
            full_message += f"\nDetails: {error_details}"
        super().__init__(full_message)
        self.expression = expression
        self.error_details = error_details


class EnvironmentNotReadyError(ConfigTemplateError, RuntimeError):
    """Raised when an operation needs a settled environment that is missing or still pending."""


class PendingNotSettledError(ConfigTemplateError, RuntimeError):
    """Raised when the value of a Pending result is read before it settled."""
