"""Tests for the gpg and debsign wrappers."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pkgrelease.common.errors import SigningError
from pkgrelease.tools.base import SignatureState
from pkgrelease.tools.gpg import DebSourceSigner, GpgManifestSigner


@pytest.fixture
def mock_run():
    """Mock subprocess calls made by the wrappers."""
    with patch("subprocess.run") as mock:
        mock.return_value = MagicMock(returncode=0, stdout=b"", stderr=b"")
        yield mock


class TestGpgManifestSigner:
    """Tests for GpgManifestSigner."""

    def test_detach_sign(self, mock_run):
        """Test detached armored signature arguments and output."""
        mock_run.return_value = MagicMock(
            returncode=0, stdout=b"-----BEGIN PGP SIGNATURE-----\n", stderr=b""
        )
        signer = GpgManifestSigner()

        signature = signer.detach_sign(Path("/work/dists/bullseye/Release"), "ABCDEF01")

        assert signature.startswith(b"-----BEGIN PGP SIGNATURE-----")
        args = mock_run.call_args[0][0]
        assert args[:2] == ["gpg", "--batch"]
        assert "--detach-sign" in args
        assert "--armor" in args
        assert args[args.index("--local-user") + 1] == "ABCDEF01"
        assert args[-1] == "/work/dists/bullseye/Release"

    def test_clear_sign(self, mock_run):
        """Test clear-signed output for InRelease."""
        signer = GpgManifestSigner(homedir="/var/lib/gnupg")

        signer.clear_sign(Path("Release"), "ABCDEF01")

        args = mock_run.call_args[0][0]
        assert "--clear-sign" in args
        assert args[args.index("--homedir") + 1] == "/var/lib/gnupg"

    def test_sign_failure(self, mock_run):
        """Test gpg failures surface as SigningError."""
        mock_run.return_value = MagicMock(returncode=2, stdout=b"", stderr=b"no secret key")
        signer = GpgManifestSigner()

        with pytest.raises(SigningError, match="no secret key"):
            signer.detach_sign(Path("Release"), "ABCDEF01")

    def test_export_public_key(self, mock_run):
        """Test exporting the armored public key."""
        mock_run.return_value = MagicMock(
            returncode=0, stdout=b"-----BEGIN PGP PUBLIC KEY BLOCK-----\n", stderr=b""
        )

        key = GpgManifestSigner().export_public_key("ABCDEF01")

        assert key.startswith(b"-----BEGIN PGP PUBLIC KEY BLOCK-----")
        assert mock_run.call_args[0][0][-3:] == ["--armor", "--export", "ABCDEF01"]

    def test_export_unknown_key(self, mock_run):
        """Test gpg exporting nothing is an error."""
        with pytest.raises(SigningError, match="No public key"):
            GpgManifestSigner().export_public_key("ABCDEF01")


class TestDebSourceSigner:
    """Tests for DebSourceSigner."""

    def test_ecosystem(self, mock_run):
        """Test ecosystem identifier."""
        assert DebSourceSigner().ecosystem == "deb"

    def test_ensure_trusted(self, mock_run):
        """Test the secret key lookup succeeds."""
        DebSourceSigner().ensure_trusted("ABCDEF01")

        assert "--list-secret-keys" in mock_run.call_args[0][0]

    def test_ensure_trusted_missing_key(self, mock_run):
        """Test a missing secret key is a SigningError."""
        mock_run.return_value = MagicMock(returncode=2, stdout=b"", stderr=b"")

        with pytest.raises(SigningError, match="not available"):
            DebSourceSigner().ensure_trusted("ABCDEF01")

    def test_valid_signature(self, mock_run):
        """Test gpg --verify success means VALID, run with LANG=C."""
        state = DebSourceSigner().signature_state(Path("hello_1.0.dsc"))

        assert state is SignatureState.VALID
        assert mock_run.call_args[1]["env"]["LANG"] == "C"

    def test_absent_signature(self, mock_run):
        """Test an unsigned file is ABSENT."""
        mock_run.return_value = MagicMock(
            returncode=2, stdout=b"", stderr=b"gpg: no signature found\n"
        )

        assert DebSourceSigner().signature_state(Path("hello_1.0.dsc")) is SignatureState.ABSENT

    def test_bad_signature(self, mock_run):
        """Test a bad signature is INVALID."""
        mock_run.return_value = MagicMock(
            returncode=1, stdout=b"", stderr=b'gpg: BAD signature from "Someone"\n'
        )

        assert DebSourceSigner().signature_state(Path("hello_1.0.dsc")) is SignatureState.INVALID

    def test_sign(self, mock_run):
        """Test debsign keeps existing signatures and uses the configured key."""
        DebSourceSigner().sign(Path("hello_1.0.dsc"), "ABCDEF01")

        assert mock_run.call_args[0][0] == [
            "debsign",
            "--no-re-sign",
            "-kABCDEF01",
            "hello_1.0.dsc",
        ]

    def test_resign_invalid(self, mock_run):
        """Test an invalid signature is replaced with debsign --re-sign."""
        DebSourceSigner().sign(Path("hello_1.0.dsc"), "ABCDEF01", resign=True)

        assert mock_run.call_args[0][0] == [
            "debsign",
            "--re-sign",
            "-kABCDEF01",
            "hello_1.0.dsc",
        ]

    def test_sign_failure(self, mock_run):
        """Test debsign failures surface as SigningError."""
        mock_run.return_value = MagicMock(returncode=1, stdout=b"", stderr=b"debsign: error")

        with pytest.raises(SigningError):
            DebSourceSigner().sign(Path("hello_1.0.dsc"), "ABCDEF01")
