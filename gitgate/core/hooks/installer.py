"""Installation of the pre-receive hook script into bare repositories"""
import os
import stat
from pathlib import Path

PRE_RECEIVE = "pre-receive"

HOOK_TEMPLATE = """#!/bin/sh
# Installed by gitgate. Protected branches only accept fast-forward updates.
exec {command} hook pre-receive
"""


class HookInstaller:
    """Writes a pre-receive script that re-invokes this program"""

    def __init__(self, hook_command: str):
        """
        Args:
            hook_command: shell-quoted command line that starts the gitgate CLI,
                e.g. ``/usr/bin/python3 -m gitgate``
        """
        self.hook_command = hook_command

    def render(self) -> str:
        return HOOK_TEMPLATE.format(command=self.hook_command)

    def install(self, repo_path: Path) -> Path:
        hooks_dir = repo_path / "hooks"
        hooks_dir.mkdir(parents=True, exist_ok=True)

        hook_path = hooks_dir / PRE_RECEIVE
        hook_path.write_text(self.render())

        # rwxr-xr-x
        os.chmod(
            hook_path,
            stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH,
        )
        return hook_path
