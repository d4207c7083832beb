"""
Privacy leak guard: keep developer-identifying strings out of the repo.

Searches the content of every version-controlled file for the invoking
user's account name and the machine's host name. Both identifiers are
captured once, when the guard is built, and passed in explicitly so the
guard can be exercised with synthetic values.

Only the local entrypoint runs this stage.
"""

from __future__ import annotations

import os
import socket
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

from presubmit.errors import LeakDetected, UnboundReferenceError, VersionControlError
from presubmit.logging import get_logger
from presubmit.process import CommandRunner
from presubmit.stages.interface import Stage, StageContext
from presubmit.stages.result import StageResult

logger = get_logger(__name__)

USER_VARIABLE = "USER"


@dataclass(frozen=True)
class Identity:
    """The identifiers that must never appear in tracked content."""

    user: str
    host: str

    @classmethod
    def from_environment(
        cls,
        environ: Mapping[str, str] | None = None,
        hostname: Callable[[], str] | None = None,
    ) -> Identity:
        """Read the current user and host.

        Raises:
            UnboundReferenceError: If USER is unset or the host name is empty
        """
        env = os.environ if environ is None else environ
        user = env.get(USER_VARIABLE)
        if not user:
            raise UnboundReferenceError(USER_VARIABLE)
        host = hostname() if hostname is not None else socket.gethostname()
        if not host:
            raise UnboundReferenceError("hostname", "hostname: empty host name")
        return cls(user=user, host=host)


@dataclass(frozen=True)
class LeakPattern:
    """A needle to search for, and how to report it when found.

    Attributes:
        identifier: Class of identifier, "username" or "hostname"
        value: The literal string to search for
        message: Failure message naming the identifier class
    """

    identifier: str
    value: str
    message: str


def leak_patterns(identity: Identity) -> list[LeakPattern]:
    """Needles in the order they are checked: user first, then host."""
    return [
        LeakPattern("username", identity.user, "Username is present in repo!"),
        LeakPattern("hostname", identity.host, "hostname is present in repo!"),
    ]


def _encode_needle(needle: str) -> bytes:
    if not needle:
        raise ValueError("refusing to search for an empty string")
    return needle.encode("utf-8")


def find_leaks(needle: str, corpus: Iterable[tuple[str, bytes]]) -> list[str]:
    """Return the paths whose content contains needle.

    The match is literal and case-sensitive. An empty result is the only
    "clean" outcome.

    Raises:
        ValueError: If needle is empty; it would match every file
    """
    encoded = _encode_needle(needle)
    return [path for path, content in corpus if encoded in content]


def tracked_files(runner: CommandRunner, root: Path) -> Iterator[tuple[str, bytes]]:
    """Yield (path, content) for every tracked regular file in the work tree.

    Tracked files deleted from the work tree, and symlinks, are skipped.

    Raises:
        VersionControlError: If `git ls-files` fails
    """
    result = runner.run(["git", "ls-files", "-z"], capture_output=True)
    if not result.ok:
        raise VersionControlError(
            result.error or f"git ls-files failed with exit code {result.returncode}",
            exit_code=result.returncode,
        )

    for raw in (result.stdout or b"").split(b"\0"):
        if not raw:
            continue
        name = os.fsdecode(raw)
        path = root / name
        if path.is_symlink() or not path.is_file():
            continue
        yield name, path.read_bytes()


Corpus = Callable[[StageContext], Iterable[tuple[str, bytes]]]


def _git_corpus(context: StageContext) -> Iterable[tuple[str, bytes]]:
    return tracked_files(context.runner, context.config.root)


class LeakGuardStage(Stage):
    """
    Fail if the user or host identifier appears in any tracked file.

    Args:
        identity: Identifiers to search for
        corpus: Source of (path, content) pairs; defaults to the files
            `git ls-files` reports in the repository root
    """

    name = "leak-guard"
    failure = LeakDetected

    def __init__(self, identity: Identity, corpus: Corpus | None = None) -> None:
        self.identity = identity
        self.corpus = corpus or _git_corpus

    def execute(self, context: StageContext) -> StageResult:
        patterns = leak_patterns(self.identity)
        needles = [(pattern.identifier, _encode_needle(pattern.value)) for pattern in patterns]
        matches: dict[str, list[str]] = {identifier: [] for identifier, _ in needles}
        scanned = 0
        try:
            # Single pass: each file is searched for every needle, then dropped.
            for path, content in self.corpus(context):
                scanned += 1
                for identifier, needle in needles:
                    if needle in content:
                        matches[identifier].append(path)
        except VersionControlError as e:
            return StageResult.terminal(error=e.message, exit_code=e.exit_code)

        for pattern in patterns:
            paths = matches[pattern.identifier]
            if paths:
                logger.error("leak.detected", identifier=pattern.identifier, paths=paths)
                return StageResult.terminal(
                    error=pattern.message,
                    details={"identifier": pattern.identifier, "paths": paths},
                )

        logger.debug("leak.clean", files=scanned)
        return StageResult.success(details={"files_scanned": scanned})
