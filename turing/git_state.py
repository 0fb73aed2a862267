"""
Repository Status
=================

Read-only git queries used when capturing state and when orienting a
restored session. A missing git binary or a directory outside a work tree
yields ``RepoStatus(is_repo=False)``; nothing here raises.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

RECENT_COMMITS_SINCE = "2 hours ago"
RECENT_COMMITS_LIMIT = 5


@dataclass
class RepoStatus:
    """Snapshot of a working tree."""
    is_repo: bool = False
    branch: str = "detached"
    porcelain: list[str] = field(default_factory=list)
    last_commit: Optional[str] = None
    recent_commits: list[str] = field(default_factory=list)

    @property
    def uncommitted(self) -> int:
        return len(self.porcelain)


def _git(args: list[str], cwd: Path) -> Optional[str]:
    """Run a git command; stdout on success, None otherwise."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def query_repo_status(project_dir: Path, recent_since: str = RECENT_COMMITS_SINCE) -> RepoStatus:
    """
    Query branch, working tree changes and recent history.

    Args:
        project_dir: Directory to query
        recent_since: git ``--since`` expression for recent commits

    Returns:
        RepoStatus for the directory
    """
    project_dir = Path(project_dir)
    inside = _git(["rev-parse", "--is-inside-work-tree"], project_dir)
    if inside is None or inside.strip() != "true":
        return RepoStatus(is_repo=False)

    status = RepoStatus(is_repo=True)

    branch = _git(["branch", "--show-current"], project_dir)
    if branch and branch.strip():
        status.branch = branch.strip()

    porcelain = _git(["status", "--porcelain"], project_dir)
    if porcelain:
        status.porcelain = [line for line in porcelain.split("\n") if line.strip()]

    last = _git(["log", "-1", "--format=%h %s"], project_dir)
    if last and last.strip():
        status.last_commit = last.strip()

    recent = _git(["log", "--oneline", f"--since={recent_since}"], project_dir)
    if recent:
        lines = [line for line in recent.split("\n") if line.strip()]
        status.recent_commits = lines[:RECENT_COMMITS_LIMIT]

    return status
