"""Tests for incremental RPM repodata regeneration."""

import json

from pkgrelease.common.config import Target
from pkgrelease.repos.base import SnapshotKind, TargetState
from pkgrelease.repos.rpm import RpmRepositoryUpdater, list_packages

from tests.fakes import FakeRpmIndexer, tree_snapshot

TARGET = Target("rpm", "centos", "8")


def write_rpm(arch_dir, name, content=None):
    path = arch_dir / "Packages" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content or name.encode())
    return path


def primary(arch_dir):
    return json.loads((arch_dir / "repodata" / "primary.json").read_text())


class TestListPackages:
    """Tests for list_packages."""

    def test_relative_sorted_without_repodata(self, tmp_path):
        """Test repodata content is never listed as a package."""
        write_rpm(tmp_path, "b-1.0.x86_64.rpm")
        write_rpm(tmp_path, "a-1.0.x86_64.rpm")
        (tmp_path / "repodata").mkdir()
        (tmp_path / "repodata" / "stray.rpm").write_bytes(b"")

        assert list_packages(tmp_path) == [
            "Packages/a-1.0.x86_64.rpm",
            "Packages/b-1.0.x86_64.rpm",
        ]


class TestRpmRepositoryUpdater:
    """Tests for RpmRepositoryUpdater."""

    def test_no_incoming_is_noop(self, layout):
        """Test a target without incoming packages is skipped."""
        indexer = FakeRpmIndexer()

        result = RpmRepositoryUpdater(layout, indexer).update(TARGET)

        assert result.state is TargetState.NO_OP
        assert result.is_publishable
        assert indexer.calls == []
        assert tree_snapshot(layout.workdir) == {}

    def test_seeds_from_base_and_recycles(self, layout):
        """Test existing entries are recycled and only new packages hashed."""
        base_arch = layout.rpm_version_dir(SnapshotKind.BASE, TARGET) / "x86_64"
        (base_arch / "repodata").mkdir(parents=True)
        (base_arch / "repodata" / "primary.json").write_text(
            json.dumps({"Packages/old-1.0.x86_64.rpm": "cafe"})
        )
        incoming_arch = layout.rpm_version_dir(SnapshotKind.INCOMING, TARGET) / "x86_64"
        write_rpm(incoming_arch, "new-1.0.x86_64.rpm")
        write_rpm(incoming_arch, "old-1.0.x86_64.rpm")
        indexer = FakeRpmIndexer()

        result = RpmRepositoryUpdater(layout, indexer).update(TARGET)

        assert result.state is TargetState.REINDEXED
        assert indexer.hashed == ["Packages/new-1.0.x86_64.rpm"]
        entries = primary(incoming_arch)
        assert entries["Packages/old-1.0.x86_64.rpm"] == "cafe"
        assert set(entries) == {"Packages/old-1.0.x86_64.rpm", "Packages/new-1.0.x86_64.rpm"}

    def test_new_architecture_built_from_scratch(self, layout):
        """Test an architecture missing from base is still indexed."""
        incoming_arch = layout.rpm_version_dir(SnapshotKind.INCOMING, TARGET) / "aarch64"
        write_rpm(incoming_arch, "hello-1.0.aarch64.rpm")
        indexer = FakeRpmIndexer()

        result = RpmRepositoryUpdater(layout, indexer).update(TARGET)

        assert result.state is TargetState.REINDEXED
        assert list(primary(incoming_arch)) == ["Packages/hello-1.0.aarch64.rpm"]

    def test_stale_repodata_is_replaced(self, layout):
        """Test leftover incoming repodata never leaks into the result."""
        incoming_arch = layout.rpm_version_dir(SnapshotKind.INCOMING, TARGET) / "x86_64"
        write_rpm(incoming_arch, "hello-1.0.x86_64.rpm")
        (incoming_arch / "repodata").mkdir()
        (incoming_arch / "repodata" / "primary.json").write_text(
            json.dumps({"Packages/gone-0.1.x86_64.rpm": "dead"})
        )
        (incoming_arch / "repodata" / "leftover.xml").write_text("stale")

        RpmRepositoryUpdater(layout, FakeRpmIndexer()).update(TARGET)

        assert list(primary(incoming_arch)) == ["Packages/hello-1.0.x86_64.rpm"]
        assert not (incoming_arch / "repodata" / "leftover.xml").exists()

    def test_reindex_is_idempotent(self, layout):
        """Test running twice on unchanged input gives identical repodata."""
        incoming_arch = layout.rpm_version_dir(SnapshotKind.INCOMING, TARGET) / "x86_64"
        write_rpm(incoming_arch, "hello-1.0.x86_64.rpm")
        updater = RpmRepositoryUpdater(layout, FakeRpmIndexer())

        updater.update(TARGET)
        first = tree_snapshot(incoming_arch)
        updater.update(TARGET)

        assert tree_snapshot(incoming_arch) == first

    def test_every_architecture_indexed(self, layout):
        """Test each architecture directory gets its own reindex call."""
        version_dir = layout.rpm_version_dir(SnapshotKind.INCOMING, TARGET)
        write_rpm(version_dir / "x86_64", "a-1.0.x86_64.rpm")
        write_rpm(version_dir / "aarch64", "a-1.0.aarch64.rpm")
        indexer = FakeRpmIndexer()

        RpmRepositoryUpdater(layout, indexer).update(TARGET)

        assert [call[0].name for call in indexer.calls] == ["aarch64", "x86_64"]

    def test_indexer_failure(self, layout):
        """Test indexer failures mark the target FAILED."""
        incoming_arch = layout.rpm_version_dir(SnapshotKind.INCOMING, TARGET) / "x86_64"
        write_rpm(incoming_arch, "hello-1.0.x86_64.rpm")

        result = RpmRepositoryUpdater(layout, FakeRpmIndexer(fail=True)).update(TARGET)

        assert result.state is TargetState.FAILED
        assert not result.is_publishable
        assert "[centos/8 @ reindex]" in result.error_message
