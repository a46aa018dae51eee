"""Commit history source backed by the git command line."""
import asyncio
import logging
import os
import re
from datetime import datetime
from typing import List, Optional
from contributor_origin.domain.commit_history_interface import ICommitHistorySource
from contributor_origin.domain.errors import GitCommandError, WorkingCopyUnavailable
from contributor_origin.domain.models import CommitTimestampSample


logger = logging.getLogger(__name__)

_OFFSET_SUFFIX = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")
_SHORTLOG_EMAIL = re.compile(r"<([^>]*)>")


def parse_commit_line(line: str) -> Optional[CommitTimestampSample]:
    """Parse one ``%aI`` line into a sample, keeping the literal offset label.

    Returns None for lines that are not ISO 8601 timestamps.
    """
    line = line.strip()
    if not line:
        return None
    try:
        instant = datetime.fromisoformat(line.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Skipping unparsable commit date: {line}")
        return None

    match = _OFFSET_SUFFIX.search(line)
    label = match.group(1) if match else "Unknown"
    return CommitTimestampSample(instant=instant, offset_label=label)


def parse_shortlog_emails(output: str) -> List[str]:
    """Extract distinct emails from ``git shortlog -sen`` output, in order."""
    emails: List[str] = []
    for line in output.splitlines():
        match = _SHORTLOG_EMAIL.search(line)
        if match:
            email = match.group(1).strip()
            if email and email not in emails:
                emails.append(email)
    return emails


class GitCommitHistory(ICommitHistorySource):
    """Reads author timestamps from a local working copy with ``git log``.

    Each git invocation is an asyncio subprocess, so sibling tasks keep
    running while git walks the history.
    """

    def __init__(self, git_executable: str = "git"):
        self._git = git_executable

    def has_working_copy(self, repo_path: str) -> bool:
        return os.path.isdir(repo_path) and os.path.exists(os.path.join(repo_path, ".git"))

    async def _run_git(self, repo_path: str, *args: str) -> str:
        if not self.has_working_copy(repo_path):
            raise WorkingCopyUnavailable(repo_path)

        try:
            process = await asyncio.create_subprocess_exec(
                self._git, *args,
                cwd=repo_path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            logger.error(f"Failed to start git in {repo_path}: {e}")
            raise GitCommandError(args, -1, str(e)) from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise GitCommandError(args, process.returncode, stderr.decode("utf-8", errors="replace"))
        return stdout.decode("utf-8", errors="replace")

    async def sample_commits(self, repo_path: str, author: str) -> List[CommitTimestampSample]:
        """Return every author timestamp of ``author`` in the working copy.

        Args:
            repo_path: Path of the local working copy
            author: Matched literally against the author name and email

        Returns:
            Samples newest first, as git log prints them
        """
        output = await self._run_git(
            repo_path, "log", "--fixed-strings", f"--author={author}", "--format=%aI"
        )
        samples = [
            sample for sample in (parse_commit_line(line) for line in output.splitlines())
            if sample is not None
        ]
        logger.debug(f"Found {len(samples)} commits by {author} in {repo_path}")
        return samples

    async def list_author_emails(self, repo_path: str) -> List[str]:
        output = await self._run_git(repo_path, "shortlog", "-sen", "HEAD")
        emails = parse_shortlog_emails(output)
        logger.info(f"Found {len(emails)} author emails in {repo_path}")
        return emails
