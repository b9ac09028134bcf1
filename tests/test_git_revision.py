"""Tests for the git revision backend and the touched-paths shortcut."""

import os

import pytest

from conftest import commit_all, git, write_files
from parts.config import PartConfig
from parts.detector import ChangeDetector
from parts.exceptions import EnumerationError, GitError
from parts.fingerprint import Fingerprinter
from parts.git import GitClient
from parts.matcher import compile_parts
from parts.models.report import PartStatus
from parts.resolver import PartResolver
from parts.sources import LiveTree, RevisionTree, WalkOptions
from parts.storage import StateStore

DEFINITIONS = [
    ("src", PartConfig(globs=["src/**"])),
    ("docs", PartConfig(regexes=[r"\.md$"])),
]


def fingerprints(parts, source):
    members = PartResolver(parts).resolve(source)
    fp = Fingerprinter(source)
    return {part.name: fp.fingerprint(members[part.name], part.name) for part in parts}


class TestGitClient:
    """Test the git command wrapper."""

    def test_rev_parse(self, git_repo):
        write_files(git_repo, {"a.txt": "a"})
        sha = commit_all(git_repo)
        client = GitClient(git_repo)

        assert client.is_repository()
        assert client.rev_parse("HEAD") == sha
        assert client.rev_parse("main") == sha

    def test_ls_tree_lists_blobs(self, git_repo):
        write_files(git_repo, {"a.txt": "abc", "dir/b.txt": "hello"})
        commit_all(git_repo)

        entries = {e.path: e for e in GitClient(git_repo).ls_tree("HEAD")}

        assert set(entries) == {"a.txt", "dir/b.txt"}
        assert entries["dir/b.txt"].size == 5

    def test_open_blob_streams_content(self, git_repo):
        write_files(git_repo, {"a.txt": "abc"})
        commit_all(git_repo)
        client = GitClient(git_repo)
        blob_id = client.ls_tree("HEAD")[0].blob_id

        with client.open_blob(blob_id) as f:
            assert f.read() == b"abc"

    def test_diff_paths(self, git_repo):
        write_files(git_repo, {"a.txt": "a", "b.txt": "b"})
        first = commit_all(git_repo)
        write_files(git_repo, {"b.txt": "changed", "c.txt": "new"})
        (git_repo / "a.txt").unlink()
        second = commit_all(git_repo)

        assert GitClient(git_repo).diff_paths(first, second) == {"a.txt", "b.txt", "c.txt"}

    def test_unknown_revision(self, git_repo):
        write_files(git_repo, {"a.txt": "a"})
        commit_all(git_repo)
        with pytest.raises(GitError):
            GitClient(git_repo).rev_parse("no-such-branch")

    def test_not_a_repository(self, tmp_path):
        assert not GitClient(tmp_path).is_repository()


class TestRevisionTree:
    """Test the revision backend against the working tree backend."""

    def test_same_content_same_fingerprints(self, git_repo):
        write_files(git_repo, {"src/a.py": "a", "src/pkg/b.py": "b", "README.md": "r", "docs/x.md": "x"})
        commit_all(git_repo)
        parts = compile_parts(DEFINITIONS)

        live = fingerprints(parts, LiveTree(git_repo))
        revision = fingerprints(parts, RevisionTree(GitClient(git_repo), "HEAD"))

        assert live == revision

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
    def test_symlinks_fingerprint_alike(self, git_repo):
        write_files(git_repo, {"src/real.py": "x = 1"})
        try:
            (git_repo / "src" / "alias.py").symlink_to("real.py")
            (git_repo / "src" / "dangling.py").symlink_to("missing.py")
        except OSError:
            pytest.skip("cannot create symlinks")
        commit_all(git_repo)
        parts = compile_parts(DEFINITIONS)
        live_tree = LiveTree(git_repo)

        assert sorted(live_tree.iter_paths(WalkOptions())) == [
            "src/alias.py", "src/dangling.py", "src/real.py",
        ]
        with live_tree.open("src/alias.py") as f:
            assert f.read() == b"real.py"
        assert fingerprints(parts, live_tree) == fingerprints(
            parts, RevisionTree(GitClient(git_repo), "HEAD")
        )

    def test_tracked_but_ignored_files_excluded_alike(self, git_repo):
        write_files(git_repo, {"src/app.py": "app", "src/gen/out.py": "gen", "src/debug.log": "log"})
        commit_all(git_repo, "before ignore rules")
        write_files(git_repo, {
            ".gitignore": "*.log\nsrc/gen/\n",
            "src/.gitignore": "!debug.log\n",
        })
        commit_all(git_repo, "ignore rules")
        parts = compile_parts([("src", PartConfig(globs=["src/**"]))])
        revision = RevisionTree(GitClient(git_repo), "HEAD")

        assert sorted(revision.iter_paths(WalkOptions())) == ["src/app.py", "src/debug.log"]
        assert sorted(revision.iter_paths(WalkOptions(use_gitignore=False))) == [
            "src/app.py", "src/debug.log", "src/gen/out.py",
        ]
        assert fingerprints(parts, LiveTree(git_repo)) == fingerprints(parts, revision)

    def test_reads_committed_content_not_working_tree(self, git_repo):
        write_files(git_repo, {"src/a.py": "committed"})
        commit_all(git_repo)
        parts = compile_parts(DEFINITIONS)
        committed = fingerprints(parts, RevisionTree(GitClient(git_repo), "HEAD"))

        write_files(git_repo, {"src/a.py": "edited"})

        assert fingerprints(parts, RevisionTree(GitClient(git_repo), "HEAD")) == committed
        assert fingerprints(parts, LiveTree(git_repo))["src"] != committed["src"]

    def test_hidden_files_filtered(self, git_repo):
        write_files(git_repo, {".hidden": "", "shown": ""})
        commit_all(git_repo)
        tree = RevisionTree(GitClient(git_repo), "HEAD")
        assert list(tree.iter_paths(WalkOptions())) == ["shown"]
        assert sorted(tree.iter_paths(WalkOptions(ignore_hidden=False))) == [".hidden", "shown"]

    def test_record_carries_size_and_blob(self, git_repo):
        write_files(git_repo, {"a.txt": "abcd"})
        commit_all(git_repo)
        record = RevisionTree(GitClient(git_repo), "HEAD").record("a.txt")
        assert record.size == 4
        assert record.blob_id

    def test_unknown_revision_is_enumeration_error(self, git_repo):
        write_files(git_repo, {"a.txt": "a"})
        commit_all(git_repo)
        with pytest.raises(EnumerationError):
            RevisionTree(GitClient(git_repo), "nope")


class TestTouchedPathsShortcut:
    """Test reuse of fingerprints for parts untouched between two revisions."""

    def test_untouched_part_reused_with_identical_result(self, git_repo):
        write_files(git_repo, {"src/a.py": "a", "docs/x.md": "x"})
        base = commit_all(git_repo, "base")
        store = StateStore(git_repo / ".parts" / "state.json")
        parts = compile_parts(DEFINITIONS, store.ignore_patterns(git_repo))
        client = GitClient(git_repo)

        ChangeDetector(parts, RevisionTree(client, "HEAD"), store).run()

        write_files(git_repo, {"docs/x.md": "edited"})
        commit_all(git_repo, "docs")

        full = ChangeDetector(parts, RevisionTree(client, "HEAD"), store).run(commit=False)
        shortcut = ChangeDetector(
            parts, RevisionTree(client, "HEAD"), store, git=client, base_revision=base
        ).run()

        outcomes = shortcut.by_name()
        assert outcomes["src"].status is PartStatus.UNCHANGED
        assert outcomes["src"].reused
        assert outcomes["docs"].status is PartStatus.CHANGED
        assert not outcomes["docs"].reused
        assert shortcut.base_revision == base
        assert {o.name: o.new for o in shortcut.outcomes} == {o.name: o.new for o in full.outcomes}

    def test_no_reuse_when_snapshot_from_other_revision(self, git_repo):
        write_files(git_repo, {"src/a.py": "a"})
        first = commit_all(git_repo, "first")
        write_files(git_repo, {"src/b.py": "b"})
        commit_all(git_repo, "second")
        store = StateStore(git_repo / ".parts" / "state.json")
        parts = compile_parts(DEFINITIONS, store.ignore_patterns(git_repo))
        client = GitClient(git_repo)

        # Snapshot anchored at HEAD, but the caller claims it was taken at the first commit
        ChangeDetector(parts, RevisionTree(client, "HEAD"), store).run()
        report = ChangeDetector(
            parts, RevisionTree(client, "HEAD"), store, git=client, base_revision=first
        ).run(commit=False)

        assert not any(o.reused for o in report.outcomes)
        assert all(o.status is PartStatus.UNCHANGED for o in report.outcomes)

    def test_changed_rules_disable_reuse(self, git_repo):
        write_files(git_repo, {"src/a.py": "a", "src/b.txt": "b", "docs/x.md": "x"})
        base = commit_all(git_repo, "base")
        store = StateStore(git_repo / ".parts" / "state.json")
        client = GitClient(git_repo)
        ChangeDetector(compile_parts(DEFINITIONS), RevisionTree(client, "HEAD"), store).run()

        narrowed = compile_parts([("src", PartConfig(globs=["src/**/*.py"])), DEFINITIONS[1]])
        report = ChangeDetector(
            narrowed, RevisionTree(client, "HEAD"), store, git=client, base_revision=base
        ).run(commit=False)

        outcomes = report.by_name()
        assert outcomes["src"].status is PartStatus.CHANGED
        assert not outcomes["src"].reused
        assert outcomes["docs"].reused
