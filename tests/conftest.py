"""Shared pytest fixtures and fake backends for cursor-sync tests."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Sequence

import pytest
from dotenv import load_dotenv

from cursor_sync.config import SyncConfig, tracked_files_for
from cursor_sync.errors import GitError, SyncError

load_dotenv()

HEAD = "c" * 40
REMOTE = "r" * 40
TREE = "t" * 40

SIGNIFICANT_DIFF = (
    "diff --git a/settings.json b/settings.json\n"
    "index 1111111..2222222 100644\n"
    "--- a/settings.json\n"
    "+++ b/settings.json\n"
    "@@ -1,3 +1,4 @@\n"
    " {\n"
    '+  "editor.fontSize": 14,\n'
    '   "workbench.colorTheme": "Default Dark+"\n'
    " }\n"
)

# What ``git diff -w`` can print for a file with whitespace-only edits.
HEADER_ONLY_DIFF = (
    "diff --git a/settings.json b/settings.json\n"
    "index 1111111..3333333 100644\n"
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: test drives a real git executable"
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class MemoryHashStore:
    """``HashStore`` kept in memory, with a controllable clock."""

    def __init__(
        self,
        value: str | None = None,
        clock: Callable[[], float] = time.time,
        written_at: float | None = None,
    ) -> None:
        self.value = value
        self.writes: list[str] = []
        self._clock = clock
        self._written_at = written_at

    def read(self) -> str | None:
        return self.value

    def write(self, commit: str) -> None:
        self.value = commit
        self.writes.append(commit)
        self._written_at = self._clock()

    def age(self) -> float | None:
        if self._written_at is None:
            return None
        return self._clock() - self._written_at

    def backdate(self, seconds: float) -> None:
        """Pretend the last write happened *seconds* ago."""
        self._written_at = self._clock() - seconds


class FakeRepository:
    """In-memory ``RepositoryBackend`` that records every call."""

    def __init__(
        self,
        head: str = HEAD,
        tip: tuple[str, str] | None = ("master", REMOTE),
    ) -> None:
        self.head_hash = head
        self.tip = tip
        self.branch = "master"
        self.branches = {"master"}
        self.calls: list[tuple] = []

        self.fetch_error: GitError | None = None
        self.merge_tree_result: str | None = TREE
        self.merge_tree_error: GitError | None = None
        self.merge_clean = True
        self.merging = False
        self.diff_error: GitError | None = None
        self.tree_diff = ""
        self.cached_diff = ""
        self.range_diff = ""

        self.commit_error: GitError | None = None
        self.push_error: GitError | None = None
        self.pull_error: GitError | None = None
        self.pull_to: str | None = None
        self.status = ""
        self.conflicts: list[str] = []
        self.stages: dict[tuple[int, str], bytes] = {}
        self.messages: list[str] = []
        self._commits = 0

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def is_repository(self) -> bool:
        return True

    def head(self) -> str:
        return self.head_hash

    def rev_parse(self, ref: str) -> str | None:
        return None

    def remote_tip(self, remote: str, branches: Sequence[str]):
        self.calls.append(("remote_tip", remote, tuple(branches)))
        return self.tip

    def fetch(self, remote: str) -> None:
        self.calls.append(("fetch", remote))
        if self.fetch_error:
            raise self.fetch_error

    def current_branch(self) -> str:
        return self.branch

    def local_branches(self) -> list[str]:
        return sorted(self.branches)

    def create_branch(self, name: str, start: str = "HEAD") -> None:
        self.calls.append(("create_branch", name))
        self.branches.add(name)
        self.branch = name

    def checkout(self, name: str) -> None:
        self.calls.append(("checkout", name))
        self.branch = name

    def delete_branch(self, name: str) -> None:
        self.calls.append(("delete_branch", name))
        self.branches.discard(name)

    def merge_no_commit(self, rev: str) -> bool:
        self.calls.append(("merge_no_commit", rev))
        self.merging = True
        return self.merge_clean

    def merge_in_progress(self) -> bool:
        return self.merging

    def merge_abort(self) -> None:
        self.calls.append(("merge_abort",))
        self.merging = False

    def merge_tree(self, ours: str, theirs: str) -> str | None:
        self.calls.append(("merge_tree", ours, theirs))
        if self.merge_tree_error:
            raise self.merge_tree_error
        return self.merge_tree_result

    def diff_ignoring_whitespace(
        self, paths, *, cached=False, base=None, target=None
    ) -> str:
        self.calls.append(("diff", tuple(paths), cached, base, target))
        if self.diff_error:
            raise self.diff_error
        if cached:
            return self.cached_diff
        if target is not None and target == self.merge_tree_result:
            return self.tree_diff
        return self.range_diff

    def add_all(self) -> None:
        self.calls.append(("add_all",))

    def commit(self, message: str) -> str:
        self.calls.append(("commit", message))
        if self.commit_error:
            raise self.commit_error
        self._commits += 1
        self.head_hash = f"{self._commits:040x}"
        self.messages.append(message)
        return self.head_hash

    def push(self) -> None:
        self.calls.append(("push",))
        if self.push_error:
            raise self.push_error

    def pull(self) -> None:
        self.calls.append(("pull",))
        if self.pull_error:
            raise self.pull_error
        if self.pull_to:
            self.head_hash = self.pull_to

    def conflicted_files(self) -> list[str]:
        return list(self.conflicts)

    def show_stage(self, stage: int, path: str) -> bytes | None:
        return self.stages.get((stage, path))

    def checkout_ours(self, paths) -> None:
        self.calls.append(("checkout_ours", tuple(paths)))
        self.conflicts = []

    def status_porcelain(self) -> str:
        return self.status


class FakeNotifier:
    """``ConfirmationBackend`` answering from a queue (default: yes)."""

    def __init__(self, answers: Sequence[bool] = ()) -> None:
        self.answers = list(answers)
        self.notifications: list[tuple[str, str]] = []
        self.prompts: list[dict] = []

    def notify(self, title: str, message: str) -> None:
        self.notifications.append((title, message))

    def confirm(self, title, message, action_label, diff=None) -> bool:
        self.prompts.append(
            {"message": message, "action": action_label, "diff": diff}
        )
        return self.answers.pop(0) if self.answers else True


class FakeExtensions:
    """``ExtensionBackend`` with a scripted process table and CLI."""

    def __init__(
        self,
        running: bool = False,
        installed: Sequence[str] = (),
        available: bool = True,
        failing: Sequence[str] = (),
    ) -> None:
        self.running = running
        self.installed = list(installed)
        self._available = available
        self.failing = set(failing)
        self.list_calls = 0
        self.install_calls: list[str] = []

    def available(self) -> bool:
        return self._available

    def is_running(self) -> bool:
        return self.running

    def list_installed(self) -> list[str]:
        self.list_calls += 1
        return list(self.installed)

    def install(self, identifier: str) -> None:
        self.install_calls.append(identifier)
        if identifier in self.failing:
            raise SyncError(f"cannot install {identifier}")
        self.installed.append(identifier)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_config(tmp_path: Path, **overrides) -> SyncConfig:
    mirror = tmp_path / "mirror"
    user = tmp_path / "user"
    mirror.mkdir(exist_ok=True)
    user.mkdir(exist_ok=True)
    values = dict(
        os_type="linux",
        mirror_dir=mirror,
        tracked_files=tracked_files_for(
            mirror, user / "settings.json", user / "keybindings.json"
        ),
        editor_binary=tmp_path / "bin" / "cursor",
        process_names=("cursor",),
        interval=5,
        debounce=300,
        notifier="console",
    )
    values.update(overrides)
    return SyncConfig(**values)


@pytest.fixture
def sync_config(tmp_path: Path) -> SyncConfig:
    """A Linux-profile config rooted in tmp_path."""
    return make_config(tmp_path)


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def hash_store() -> MemoryHashStore:
    return MemoryHashStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def extensions() -> FakeExtensions:
    return FakeExtensions()
