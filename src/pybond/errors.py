"""pybond specific error classes.

These classes are subclasses of Python exception types. pybond raises
these exceptions when documented.
"""


class ExpressionError(ValueError):
    """Raised when an energy expression cannot be compiled."""

    def __init__(self, message: str, expression: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.expression = expression

    def __str__(self) -> str:
        """Returns the error message."""
        if self.expression:
            return f"{self.message} (in expression '{self.expression}')"
        return self.message


class ReinitializationRequiredError(RuntimeError):
    """Raised when a structural change is pushed into a built context."""

    def __init__(self, change: str) -> None:
        self.change = change

    def __str__(self) -> str:
        """Returns the error message."""
        return (f'{self.change} cannot be applied to a built context; '
                'call Context.reinitialize() instead.')
