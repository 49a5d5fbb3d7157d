"""Agent command execution."""

from identity_hub.commands.errors import (
    CommandError,
    EmailNotFoundError,
    IdentityNameConflictError,
    IdentityNotFoundError,
    ServiceNotFoundError,
    TaskNotFoundError,
    UnknownCommandTypeError,
)
from identity_hub.commands.executor import BatchState, CommandExecutor
from identity_hub.commands.working_copy import BatchWorkingCopy

__all__ = [
    "BatchState",
    "BatchWorkingCopy",
    "CommandError",
    "CommandExecutor",
    "EmailNotFoundError",
    "IdentityNameConflictError",
    "IdentityNotFoundError",
    "ServiceNotFoundError",
    "TaskNotFoundError",
    "UnknownCommandTypeError",
]
