"""Commit and push a deployed manifest."""

import logging
import subprocess
from pathlib import Path
from typing import List

from davit.errors import GitError

logger = logging.getLogger(__name__)


def is_repo(path: Path) -> bool:
    return (path / ".git").exists()


def _git(repo_root: Path, args: List[str], step: str) -> None:
    try:
        result = subprocess.run(
            ["git", "-C", str(repo_root), *args],
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise GitError(f"Failed to execute git {step}: git not found in PATH") from exc
    if result.returncode != 0:
        raise GitError(f"git {step} failed: {result.stderr.strip() or result.stdout.strip()}")


def commit_and_push(repo_root: Path, message: str, file: Path) -> None:
    """git add <file>, commit -m <message>, push."""
    if not is_repo(repo_root):
        raise GitError(f"Not a git repository: {repo_root}")
    logger.info("Committing %s in %s", file, repo_root)
    _git(repo_root, ["add", str(file)], "add")
    _git(repo_root, ["commit", "-m", message], "commit")
    _git(repo_root, ["push"], "push")
