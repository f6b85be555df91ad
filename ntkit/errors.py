"""
Error classes for the ntkit pipeline.

Errors are raised inside a stage and caught at the stage boundary,
where they become a failed StageResult and a console diagnostic:
- AssemblyError: the compilation unit could not be put together
- InterpreterError: the interpreter backend could not be started
- PackageValidationError: the program did not define a usable package
- CommandError: a deployment command could not be rendered or sent

No error type crosses the Toolkit facade.
"""


class ToolkitError(Exception):
    """Base exception for ntkit."""
    pass


class AssemblyError(ToolkitError):
    """
    The user source could not be read or persisted.

    Carries the OS-level reason in its message.
    """
    pass


class InterpreterError(ToolkitError):
    """
    Interpreter backend failure outside the user program.

    Examples:
    - Unknown backend name
    - Interpreter executable not found
    - Session used before initialize()

    Errors raised *by the user program* are not InterpreterErrors; they
    are reported through the error output of the session.
    """
    pass


class PackageValidationError(ToolkitError):
    """The result graph is missing a required package element."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class CommandError(ToolkitError):
    """A deployment command is malformed."""
    pass


class CommandTooLongError(CommandError):
    """A rendered command exceeds the target's per-command limit."""

    def __init__(self, length: int, limit: int):
        super().__init__(
            f"command is {length} characters, target accepts at most {limit}"
        )
        self.length = length
        self.limit = limit
