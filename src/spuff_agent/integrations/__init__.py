from spuff_agent.integrations.command_runner import (
    ShellResult,
    run_command,
    run_shell,
    run_shell_with_timeout,
)

__all__ = ["ShellResult", "run_command", "run_shell", "run_shell_with_timeout"]
