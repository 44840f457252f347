"""Git operations module.

Usage:
    from relkit.git import Repository

    repo = Repository(Path("/path/to/repo"))
    clean = repo.is_working_tree_clean()
    if clean.is_ok() and clean.unwrap():
        print("Working tree clean")
"""

from relkit.git.repository import (
    GitStatus,
    Repository,
    StatusEntry,
    release_commit_message,
)

__all__ = [
    "GitStatus",
    "Repository",
    "StatusEntry",
    "release_commit_message",
]
