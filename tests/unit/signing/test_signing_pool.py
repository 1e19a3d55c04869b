"""Tests for the concurrent signing pool."""

import threading
from pathlib import Path

import pytest

from pkgrelease.common.errors import CommandError, SigningError
from pkgrelease.signing.pool import PackageArtifact, SigningPool
from pkgrelease.tools.base import SignatureState

from tests.fakes import FakePackageSigner


def artifacts(*names, ecosystem="rpm"):
    return [PackageArtifact(Path("/incoming") / name, ecosystem) for name in names]


class TestSigningPool:
    """Tests for SigningPool."""

    def test_requires_identity(self):
        """Test an empty signing identity is rejected."""
        with pytest.raises(SigningError):
            SigningPool({"rpm": FakePackageSigner()}, "")

    def test_requires_workers(self):
        """Test the pool needs at least one worker."""
        with pytest.raises(ValueError):
            SigningPool({"rpm": FakePackageSigner()}, "ABCDEF01", workers=0)

    def test_signs_only_unsigned(self):
        """Test already signed packages are skipped and the rest signed."""
        signer = FakePackageSigner(
            states={Path("/incoming/pkgA.rpm"): SignatureState.VALID}
        )
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        report = pool.run(artifacts("pkgA.rpm", "pkgB.rpm"))

        assert signer.sign_calls == [Path("/incoming/pkgB.rpm")]
        assert signer.resigned == []
        assert report.signed == [Path("/incoming/pkgB.rpm")]
        assert report.already_signed == [Path("/incoming/pkgA.rpm")]
        assert signer.states[Path("/incoming/pkgA.rpm")] is SignatureState.VALID
        assert signer.states[Path("/incoming/pkgB.rpm")] is SignatureState.VALID

    def test_invalid_signature_is_replaced(self):
        """Test a package with an invalid signature is signed again."""
        signer = FakePackageSigner(
            states={Path("/incoming/pkgA.rpm"): SignatureState.INVALID}
        )
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        report = pool.run(artifacts("pkgA.rpm"))

        assert report.signed == [Path("/incoming/pkgA.rpm")]
        assert signer.resigned == [Path("/incoming/pkgA.rpm")]

    def test_every_artifact_signed_once(self):
        """Test every artifact ends up signed with exactly one sign call each."""
        names = [f"pkg{i}.rpm" for i in range(20)]
        signer = FakePackageSigner(delay=0.001)
        pool = SigningPool({"rpm": signer}, "ABCDEF01", workers=4)

        report = pool.run(artifacts(*names))

        assert sorted(p.name for p in signer.sign_calls) == sorted(names)
        assert len(report.signed) == 20
        assert all(state is SignatureState.VALID for state in signer.states.values())

    def test_duplicate_artifacts_signed_once(self):
        """Test an artifact listed twice is only signed once."""
        signer = FakePackageSigner()
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        pool.run(artifacts("pkgA.rpm", "pkgA.rpm"))

        assert signer.sign_calls == [Path("/incoming/pkgA.rpm")]

    def test_rerun_is_noop(self):
        """Test a second run over the same artifacts signs nothing."""
        signer = FakePackageSigner()
        pool = SigningPool({"rpm": signer}, "ABCDEF01")
        pool.run(artifacts("pkgA.rpm", "pkgB.rpm"))

        report = pool.run(artifacts("pkgA.rpm", "pkgB.rpm"))

        assert report.signed == []
        assert len(report.already_signed) == 2
        assert len(signer.sign_calls) == 2

    def test_trust_before_any_check(self):
        """Test the identity is trusted once before workers inspect packages."""
        signer = FakePackageSigner()
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        pool.run(artifacts("pkgA.rpm", "pkgB.rpm", "pkgC.rpm"))

        assert signer.events[0] == ("trust", "ABCDEF01")
        assert [e for e in signer.events if e[0] == "trust"] == [("trust", "ABCDEF01")]

    def test_trust_failure_aborts_before_signing(self):
        """Test a failed trust bootstrap signs nothing."""
        signer = FakePackageSigner(trust_error=CommandError(["rpm", "--import"], 1, "denied"))
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        with pytest.raises(SigningError, match="Cannot trust"):
            pool.run(artifacts("pkgA.rpm"))

        assert signer.sign_calls == []
        assert ("check", "pkgA.rpm") not in signer.events

    def test_empty_run_skips_trust(self):
        """Test nothing is trusted when there is nothing to sign."""
        signer = FakePackageSigner()
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        report = pool.run([])

        assert report.inspected == 0
        assert signer.events == []

    def test_failure_is_fatal(self):
        """Test a failed sign aborts the run with SigningError."""
        signer = FakePackageSigner(fail_on={"pkgB.rpm"})
        pool = SigningPool({"rpm": signer}, "ABCDEF01", workers=1)

        with pytest.raises(SigningError, match="pkgB.rpm"):
            pool.run(artifacts("pkgA.rpm", "pkgB.rpm", "pkgC.rpm", "pkgD.rpm"))

    def test_failure_cancels_pending_jobs(self):
        """Test queued jobs are not started after the first failure."""
        names = ["pkgA.rpm"] + [f"pkg{i}.rpm" for i in range(30)]
        signer = FakePackageSigner(fail_on={"pkgA.rpm"}, delay=0.01)
        pool = SigningPool({"rpm": signer}, "ABCDEF01", workers=1)

        with pytest.raises(SigningError):
            pool.run(artifacts(*names))

        assert len(signer.sign_calls) < len(names)

    def test_unexpected_error_cancels_pending_jobs(self):
        """Test an error outside the release hierarchy still aborts the run."""

        class UnwritableSigner(FakePackageSigner):
            def sign(self, artifact, identity, resign=False):
                super().sign(artifact, identity, resign)
                if artifact.name == "pkg0.rpm":
                    raise PermissionError(13, "Permission denied", str(artifact))

        names = [f"pkg{i}.rpm" for i in range(50)]
        signer = UnwritableSigner(delay=0.01)
        pool = SigningPool({"rpm": signer}, "ABCDEF01", workers=1)

        with pytest.raises(SigningError, match="pkg0.rpm"):
            pool.run(artifacts(*names))

        assert len(signer.sign_calls) < len(names)
        assert not [t for t in threading.enumerate() if t.name.startswith("sign")]

    def test_no_jobs_running_after_return(self):
        """Test the pool waits for in-flight jobs before raising."""
        signer = FakePackageSigner(fail_on={"pkg0.rpm"}, delay=0.01)
        pool = SigningPool({"rpm": signer}, "ABCDEF01", workers=4)
        before = threading.active_count()

        with pytest.raises(SigningError):
            pool.run(artifacts(*[f"pkg{i}.rpm" for i in range(8)]))

        assert not [t for t in threading.enumerate() if t.name.startswith("sign")]
        assert threading.active_count() <= before

    def test_unverified_signature_is_error(self):
        """Test a sign that leaves no valid signature fails the run."""

        class SilentSigner(FakePackageSigner):
            def sign(self, artifact, identity, resign=False):
                self.sign_calls.append(artifact)

        signer = SilentSigner()
        pool = SigningPool({"rpm": signer}, "ABCDEF01")

        with pytest.raises(SigningError, match="after signing"):
            pool.run(artifacts("pkgA.rpm"))

    def test_missing_signer(self):
        """Test artifacts of an ecosystem without signer are rejected."""
        pool = SigningPool({"rpm": FakePackageSigner()}, "ABCDEF01")

        with pytest.raises(SigningError, match="No package signer"):
            pool.run(artifacts("hello_1.0.dsc", ecosystem="deb"))

    def test_mixed_ecosystems(self):
        """Test each artifact is signed by its own ecosystem's signer."""
        rpm_signer = FakePackageSigner("rpm")
        deb_signer = FakePackageSigner("deb")
        pool = SigningPool({"rpm": rpm_signer, "deb": deb_signer}, "ABCDEF01")

        pool.run(artifacts("pkgA.rpm") + artifacts("hello_1.0.dsc", ecosystem="deb"))

        assert [p.name for p in rpm_signer.sign_calls] == ["pkgA.rpm"]
        assert [p.name for p in deb_signer.sign_calls] == ["hello_1.0.dsc"]
        assert rpm_signer.trusted == ["ABCDEF01"]
        assert deb_signer.trusted == ["ABCDEF01"]
