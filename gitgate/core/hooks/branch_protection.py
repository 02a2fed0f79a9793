"""Pre-receive branch protection: protected refs only move forward"""

import subprocess
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence

from gitgate.core.exceptions import ToolInvocationError
from gitgate.infrastructure.git_protocol import GitProtocolValidator

DEFAULT_PROTECTED_REFS = ("refs/heads/main", "refs/heads/master")


@dataclass(frozen=True)
class RefUpdate:
    """One ``<old-oid> <new-oid> <ref-name>`` line of pre-receive input"""
    old_oid: str
    new_oid: str
    ref_name: str

    @property
    def is_deletion(self) -> bool:
        return GitProtocolValidator.is_zero_id(self.new_oid)

    @property
    def is_creation(self) -> bool:
        return GitProtocolValidator.is_zero_id(self.old_oid)


@dataclass(frozen=True)
class HookResult:
    accepted: bool
    message: Optional[str] = None
    rejected_ref: Optional[str] = None


class PushRejected(Exception):
    def __init__(self, ref_name: str, message: str):
        super().__init__(message)
        self.ref_name = ref_name
        self.message = message


def parse_ref_updates(lines: Iterable[str]) -> Iterator[RefUpdate]:
    """Yield updates, skipping lines that are not exactly three fields"""
    for line in lines:
        parts = line.split()
        if len(parts) != 3:
            continue
        yield RefUpdate(old_oid=parts[0], new_oid=parts[1], ref_name=parts[2])


class GitAncestryChecker:
    """
    Runs ``git merge-base --is-ancestor`` in the hook's environment.

    Inside a pre-receive hook git exports the quarantine object directory, so
    the subprocess sees the objects being pushed before they are accepted.
    """

    def __init__(self, git_binary: str = "git"):
        self.git_binary = git_binary

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        try:
            completed = subprocess.run(
                [self.git_binary, "merge-base", "--is-ancestor", ancestor, descendant],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ToolInvocationError(f"Error checking commit graph: {e}")

        if completed.returncode == 0:
            return True
        if completed.returncode == 1:
            return False

        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        raise ToolInvocationError(
            f"Error checking commit graph: git exited with {completed.returncode}: {stderr}"
        )


class BranchProtectionHook:
    """Rejects deletion and non-fast-forward updates of protected refs"""

    def __init__(
        self,
        protected_refs: Sequence[str] = DEFAULT_PROTECTED_REFS,
        ancestry_checker: Optional[GitAncestryChecker] = None,
    ):
        self.protected_refs = frozenset(protected_refs)
        self.ancestry_checker = ancestry_checker or GitAncestryChecker()

    def is_protected(self, ref_name: str) -> bool:
        return ref_name in self.protected_refs

    def check_update(self, update: RefUpdate) -> None:
        """
        Raises:
            PushRejected: the update violates branch protection
        """
        if not self.is_protected(update.ref_name):
            return

        ref = update.ref_name
        if update.is_deletion:
            raise PushRejected(ref, f"Deletion of protected branch '{ref}' is not allowed.")

        if update.is_creation:
            return

        if not GitProtocolValidator.validate_object_id(update.old_oid):
            raise PushRejected(ref, f"Invalid old OID {update.old_oid}")
        if not GitProtocolValidator.validate_object_id(update.new_oid):
            raise PushRejected(ref, f"Invalid new OID {update.new_oid}")

        try:
            fast_forward = self.ancestry_checker.is_ancestor(update.old_oid, update.new_oid)
        except ToolInvocationError as e:
            # Fail closed
            raise PushRejected(ref, e.message)

        if not fast_forward:
            raise PushRejected(
                ref, f"Non-fast-forward update to protected branch '{ref}' is rejected."
            )

    def run(self, lines: Iterable[str]) -> HookResult:
        """
        Check every update; the first rejection rejects the whole push.

        Git aborts all ref updates when pre-receive exits non-zero, so there
        is no partial acceptance.
        """
        for update in parse_ref_updates(lines):
            try:
                self.check_update(update)
            except PushRejected as e:
                return HookResult(accepted=False, message=e.message, rejected_ref=e.ref_name)

        return HookResult(accepted=True)
