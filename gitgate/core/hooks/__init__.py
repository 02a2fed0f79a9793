from .branch_protection import (BranchProtectionHook, GitAncestryChecker, HookResult,
                                PushRejected, RefUpdate, parse_ref_updates)
from .installer import HookInstaller

__all__ = [
    "BranchProtectionHook",
    "GitAncestryChecker",
    "HookInstaller",
    "HookResult",
    "PushRejected",
    "RefUpdate",
    "parse_ref_updates",
]
