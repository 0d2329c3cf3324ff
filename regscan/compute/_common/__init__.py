from ._command import CommandExecutor, CommandResult

__all__ = ["CommandExecutor", "CommandResult"]
