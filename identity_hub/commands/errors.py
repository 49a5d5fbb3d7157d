"""Command execution errors. Each one fails a single command, never the batch."""


class CommandError(Exception):
    """Base exception for a command that could not be applied."""

    code = "command_error"


class IdentityNotFoundError(CommandError):
    """The command's identityId or identityName matched nothing."""

    code = "identity_not_found"


class TaskNotFoundError(CommandError):
    """No open task matched the given id or title."""

    code = "task_not_found"


class IdentityNameConflictError(CommandError):
    """An identity with that name (ignoring case) already exists."""

    code = "identity_name_conflict"

    def __init__(self, name: str):
        super().__init__(f'An identity named "{name}" already exists')
        self.name = name


class UnknownCommandTypeError(CommandError):
    """The agent issued a command type the executor does not support."""

    code = "unknown_command_type"

    def __init__(self, command_type: str):
        super().__init__(f"Unknown command type: {command_type}")
        self.command_type = command_type


class EmailNotFoundError(CommandError):
    """The command's emailId matched no email account."""

    code = "email_not_found"


class ServiceNotFoundError(CommandError):
    """The command's serviceId matched no service."""

    code = "service_not_found"
