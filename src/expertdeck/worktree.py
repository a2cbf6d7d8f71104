"""
Git worktree isolation for experts.

Each relocated expert works in its own worktree under
<git_root>/.expertdeck/worktrees/<branch>. The worktree carries a
`.expertdeck` alias pointing back at the shared data root, so the agent
still sees the session's status markers, reports and instructions.
"""

import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .config import DATA_DIR_NAME
from .exceptions import ExternalCommandFailed, InvalidBranchNameError, StaleResourceState
from .logging_config import get_logger
from .protocols import CommandRunner

logger = get_logger("worktree")

GIT_TIMEOUT = 60

_INVALID_BRANCH_CHARS = re.compile(r"[^a-z0-9._-]+")
_REPEATED_DASHES = re.compile(r"-{2,}")


def sanitize_branch_name(name: str) -> str:
    """Turn a free-form feature name into a usable branch name.

    Lowercases, replaces anything outside [a-z0-9._-] with '-', collapses
    repeated dashes and trims separators from both ends.

    Raises:
        InvalidBranchNameError: If nothing usable is left
    """
    branch = _INVALID_BRANCH_CHARS.sub("-", name.strip().lower())
    branch = _REPEATED_DASHES.sub("-", branch).strip("-.")
    if not branch or ".." in branch or branch.endswith(".lock"):
        raise InvalidBranchNameError(name)
    return branch


def _default_runner() -> CommandRunner:
    from .implementations import RealCommandRunner
    return RealCommandRunner()


def resolve_git_root(project_path: Path, runner: Optional[CommandRunner] = None) -> Path:
    """Locate the main working tree root for a path.

    Works from inside a linked worktree too: the common git dir always
    belongs to the main checkout.

    Raises:
        ExternalCommandFailed: If the path is not inside a git repository
    """
    runner = runner or _default_runner()
    project_path = Path(project_path)
    cmd = ["git", "rev-parse", "--path-format=absolute", "--git-common-dir"]
    result = runner.run(cmd, cwd=project_path, timeout=GIT_TIMEOUT)
    if not result.ok:
        raise ExternalCommandFailed(
            f"Failed to resolve git root for {project_path}; is this a git repository?",
            command=cmd,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    common_dir = Path(result.stdout.strip())
    return common_dir.parent if common_dir.parent != common_dir else project_path


class WorktreeManager:
    """Creates and tracks expert worktrees for one repository."""

    def __init__(
        self,
        git_root: Path,
        data_root: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
    ):
        self.git_root = Path(git_root)
        self.data_root = Path(data_root) if data_root else self.git_root / DATA_DIR_NAME
        self.runner = runner or _default_runner()

    @classmethod
    def resolve(
        cls,
        project_path: Path,
        data_root: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
    ) -> "WorktreeManager":
        runner = runner or _default_runner()
        return cls(resolve_git_root(project_path, runner), data_root=data_root, runner=runner)

    def worktree_dir(self) -> Path:
        return self.data_root / "worktrees"

    def worktree_path(self, branch: str) -> Path:
        return self.worktree_dir() / branch

    def worktree_exists(self, branch: str) -> bool:
        return self.worktree_path(branch).exists()

    def _git(self, *args: str):
        cmd = ["git", *args]
        return cmd, self.runner.run(cmd, cwd=self.git_root, timeout=GIT_TIMEOUT)

    def list_worktrees(self) -> List[Dict[str, str]]:
        """Registered worktrees, parsed from `git worktree list --porcelain`.

        Each entry has "path" and, when checked out on a branch, "branch"
        (short name).
        """
        cmd, result = self._git("worktree", "list", "--porcelain")
        if not result.ok:
            raise ExternalCommandFailed(
                "git worktree list failed", command=cmd,
                returncode=result.returncode, stderr=result.stderr,
            )
        entries = []
        current: Dict[str, str] = {}
        for line in result.stdout.splitlines():
            if not line.strip():
                if current:
                    entries.append(current)
                current = {}
                continue
            key, _, value = line.partition(" ")
            if key == "worktree":
                current["path"] = value
            elif key == "branch":
                current["branch"] = value.removeprefix("refs/heads/")
        if current:
            entries.append(current)
        return entries

    def _registered_branch(self, path: Path) -> Optional[str]:
        """Branch git has checked out at path; "" if detached, None if unknown."""
        target = path.resolve()
        for entry in self.list_worktrees():
            if Path(entry["path"]).resolve() == target:
                return entry.get("branch", "")
        return None

    def create_worktree(self, branch: str) -> Path:
        """Create (or reuse) the worktree for a branch.

        Attaches an existing branch first, then falls back to creating it
        with -b. Calling this again for a branch that already has its
        worktree returns the same path without touching git state.

        Raises:
            StaleResourceState: A directory is in the way that git does not
                know about, or that is checked out on another branch
            ExternalCommandFailed: Both `git worktree add` forms failed
        """
        wt_path = self.worktree_path(branch)

        if wt_path.exists():
            registered = self._registered_branch(wt_path)
            if registered == branch:
                logger.info("Reusing existing worktree %s for %s", wt_path, branch)
                return wt_path
            if registered is None:
                raise StaleResourceState(
                    f"{wt_path} exists but is not a registered git worktree",
                    hint="remove the directory, then run `git worktree prune`",
                )
            raise StaleResourceState(
                f"{wt_path} is checked out on '{registered or 'detached HEAD'}', not '{branch}'",
                hint="remove it with `git worktree remove`, then run `git worktree prune`",
            )

        self.worktree_dir().mkdir(parents=True, exist_ok=True)

        _, attach = self._git("worktree", "add", str(wt_path), branch)
        if attach.ok:
            logger.info("Attached existing branch %s at %s", branch, wt_path)
            return wt_path

        cmd, result = self._git("worktree", "add", str(wt_path), "-b", branch)
        if not result.ok:
            stderr = "\n".join(
                f"{form}: {output.strip()}"
                for form, output in (("attach", attach.stderr), ("create", result.stderr))
                if output.strip()
            )
            raise ExternalCommandFailed(
                f"git worktree add failed for branch '{branch}'", command=cmd,
                returncode=result.returncode, stderr=stderr,
            )
        logger.info("Created branch %s with worktree %s", branch, wt_path)
        return wt_path

    def establish_alias(self, worktree_path: Path) -> Path:
        """Point <worktree>/.expertdeck at the canonical shared data root.

        Whatever is at the alias location (stale link, file, directory
        copied by an earlier run) is replaced.
        """
        alias = Path(worktree_path) / DATA_DIR_NAME
        target = self.data_root.resolve()

        if alias.is_symlink() or alias.exists():
            try:
                alias.unlink()
            except (IsADirectoryError, PermissionError):
                shutil.rmtree(alias)

        alias.symlink_to(target, target_is_directory=True)
        logger.debug("Linked %s -> %s", alias, target)
        return alias

    def remove_worktree(self, branch: str, force: bool = False) -> None:
        """Remove a branch's worktree (the branch itself is kept).

        The data-root alias is unlinked first; git would otherwise refuse
        to remove a worktree holding an untracked entry.
        """
        wt_path = self.worktree_path(branch)
        alias = wt_path / DATA_DIR_NAME
        if alias.is_symlink():
            alias.unlink()
        args = ["worktree", "remove", str(wt_path)]
        if force:
            args.append("--force")
        cmd, result = self._git(*args)
        if not result.ok:
            raise ExternalCommandFailed(
                "git worktree remove failed", command=cmd,
                returncode=result.returncode, stderr=result.stderr,
            )
        logger.info("Removed worktree %s", wt_path)

    def prune(self) -> None:
        cmd, result = self._git("worktree", "prune")
        if not result.ok:
            raise ExternalCommandFailed(
                "git worktree prune failed", command=cmd,
                returncode=result.returncode, stderr=result.stderr,
            )

    def session_worktrees(self) -> List[Dict[str, str]]:
        """Registered worktrees that live under this session's worktree dir."""
        root = self.worktree_dir().resolve()
        result = []
        for entry in self.list_worktrees():
            path = Path(entry["path"]).resolve()
            if root in path.parents:
                result.append(entry)
        return result
