"""Shell command synthesis for remediation actions.

Each action type maps to a builder in COMMAND_BUILDERS. Builders are pure:
the same action always yields the same single-line command. User-supplied
names and paths are shell-quoted.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable

from fleet_remediator.exceptions import UnsupportedActionError
from fleet_remediator.models import (
    CleanupAptAction,
    ClearPathAction,
    RestartServiceAction,
    RunCommandAction,
    VacuumJournalAction,
)


def restart_service_command(action: RestartServiceAction) -> str:
    scope = " --user" if action.user_scope else ""
    return f"systemctl{scope} restart {shlex.quote(action.service_name)}"


def clear_path_command(action: ClearPathAction) -> str:
    age = f" -mtime +{action.older_than_days}" if action.older_than_days is not None else ""
    return f"find {shlex.quote(action.path)} -mindepth 1{age} -delete"


def vacuum_journal_command(action: VacuumJournalAction) -> str:
    return f"journalctl --vacuum-time={action.max_age}"


def cleanup_apt_command(action: CleanupAptAction) -> str:
    if action.autoremove:
        return "apt-get clean && apt-get autoremove -y"
    return "apt-get clean"


def run_command_command(action: RunCommandAction) -> str:
    return action.command


COMMAND_BUILDERS: dict[str, Callable] = {
    "RestartService": restart_service_command,
    "ClearPath": clear_path_command,
    "VacuumJournal": vacuum_journal_command,
    "CleanupApt": cleanup_apt_command,
    "RunCommand": run_command_command,
}


def wrap_sudo(command: str) -> str:
    """Run the whole command, including any ``&&`` chain, under non-interactive sudo."""
    return f"sudo -n sh -c {shlex.quote(command)}"


def synthesize_command(action: object) -> str:
    """Return the remote shell command for a remediation action.

    Args:
        action: A parsed remediation action.

    Returns:
        The single-line command, wrapped in sudo if the action asks for it.

    Raises:
        UnsupportedActionError: If no builder is registered for the action type.
    """
    action_type = getattr(action, "type", None)
    builder = COMMAND_BUILDERS.get(action_type) if isinstance(action_type, str) else None
    if builder is None:
        raise UnsupportedActionError(
            f"Unsupported action type: {action_type!r}",
            action_type=str(action_type),
        )
    command = builder(action)
    if getattr(action, "use_sudo", False):
        command = wrap_sudo(command)
    return command
