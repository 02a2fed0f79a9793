from . import git_http, health, repositories

__all__ = ["git_http", "health", "repositories"]
