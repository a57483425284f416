"""Tests for configuration, signing material, validation and commands.

This module tests:
- TOML config loading (load_config, get_config_value)
- SigningMaterial resolution from options, environment and config
- Input file validation (validate_file)
- Command execution (run_command, mask_secrets)
- Plist helpers (export_options, parse_keychain_list)
"""

import base64
import logging
import subprocess
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from mobilesign import (
    SECRET_MASK,
    CommandError,
    ConfigurationError,
    CustomFormatter,
    SigningMaterial,
    ValidationError,
    export_options,
    get_config_value,
    load_config,
    mask_secrets,
    parse_keychain_list,
    run_command,
    validate_file,
)

CONFIG = """\
[ios]
team_id = "CONFIGTEAM1"
bundle_id = "com.config.app"
p12_cert = "certs/config.p12"
export_method = "ad-hoc"
"""


class TestLoadConfig:
    """Tests for load_config()."""

    def test_explicit_path(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.toml"
        path.write_text(CONFIG)
        config = load_config(path)
        assert get_config_value(config, "ios", "team_id") == "CONFIGTEAM1"

    def test_explicit_path_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("[ios\nteam_id = ")
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_config(path)

    def test_search_order(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "mobilesign.toml").write_text('[ios]\nteam_id = "PLAIN"\n')
        (tmp_path / ".mobilesign.toml").write_text('[ios]\nteam_id = "HIDDEN"\n')
        assert get_config_value(load_config(), "ios", "team_id") == "HIDDEN"

    def test_no_config(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert load_config() == {}


class TestGetConfigValue:
    """Tests for get_config_value()."""

    def test_missing_section(self) -> None:
        assert get_config_value({}, "ios", "team_id", "x") == "x"

    def test_section_not_table(self) -> None:
        assert get_config_value({"ios": "oops"}, "ios", "team_id") is None

    def test_non_string_value(self) -> None:
        config = {"ios": {"team_id": 1234}}
        assert get_config_value(config, "ios", "team_id", "x") == "x"


class TestSigningMaterial:
    """Tests for SigningMaterial."""

    def test_empty(self) -> None:
        material = SigningMaterial()
        assert not material.is_configured
        assert not material.has_certificate
        assert not material.has_profile

    def test_empty_strings_are_absent(self) -> None:
        material = SigningMaterial(
            certificate_path="", certificate_password="", team_id=""
        )
        assert material.certificate_path is None
        assert material.certificate_password is None
        assert not material.is_configured

    def test_certificate_needs_password(self) -> None:
        assert not SigningMaterial(certificate_path="a.p12").has_certificate
        assert SigningMaterial(
            certificate_path="a.p12", certificate_password="pw"
        ).has_certificate
        assert SigningMaterial(
            certificate_data=b"p12", certificate_password="pw"
        ).has_certificate

    def test_repr_masks_password(self) -> None:
        material = SigningMaterial(
            certificate_password="hunter2", team_id="ABCD123456"
        )
        assert "hunter2" not in repr(material)
        assert SECRET_MASK in repr(material)

    def test_precedence(self) -> None:
        config = load_config_text(CONFIG)
        environ = {
            "IOS_TEAM_ID": "ENVTEAM1",
            "IOS_BUNDLE_ID": "com.env.app",
            "IOS_CERT_PASSWORD": "envpass",
        }
        material = SigningMaterial.from_sources(
            {"team_id": "CLITEAM1", "bundle_id": None},
            config=config,
            environ=environ,
        )
        assert material.team_id == "CLITEAM1"
        assert material.bundle_id == "com.env.app"
        assert material.certificate_password == "envpass"
        assert material.certificate_path == Path("certs/config.p12")

    def test_base64_certificate(self) -> None:
        environ = {
            "IOS_TEAM_ID": "ENVTEAM1",
            "IOS_P12_BASE64": base64.b64encode(b"p12 bytes").decode(),
        }
        material = SigningMaterial.from_sources(environ=environ)
        assert material.certificate_data == b"p12 bytes"
        assert material.certificate_path is None

    def test_path_wins_over_base64(self) -> None:
        environ = {
            "IOS_P12_CERT": "dist.p12",
            "IOS_P12_BASE64": base64.b64encode(b"p12 bytes").decode(),
        }
        material = SigningMaterial.from_sources(environ=environ)
        assert material.certificate_path == Path("dist.p12")
        assert material.certificate_data is None

    def test_invalid_base64(self) -> None:
        with pytest.raises(ConfigurationError, match="base64"):
            SigningMaterial.from_sources(environ={"IOS_P12_BASE64": "%%%"})


def load_config_text(text: str) -> dict:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text(text)
        return load_config(path)


class TestValidateFile:
    """Tests for validate_file()."""

    def test_nonexistent(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="does not exist"):
            validate_file(tmp_path / "missing.p12")

    def test_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="not a regular file"):
            validate_file(tmp_path)

    def test_empty(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty.p12"
        empty.touch()
        with pytest.raises(ValidationError, match="empty"):
            validate_file(empty)

    def test_too_large(self, tmp_path: Path) -> None:
        large = tmp_path / "large.p12"
        large.write_bytes(b"x" * 100)
        with pytest.raises(ValidationError, match="exceeds maximum size"):
            validate_file(large, max_size=50)

    def test_valid(self, tmp_path: Path) -> None:
        valid = tmp_path / "dist.p12"
        valid.write_bytes(b"p12 data")
        validate_file(valid)

    def test_is_configuration_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            validate_file(tmp_path / "missing.p12")


class TestRunCommand:
    """Tests for run_command()."""

    @patch("subprocess.run")
    def test_returns_stdout(self, mock_run, tmp_path: Path) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout="out\n")
        assert run_command(["security", "list-keychains"], cwd=tmp_path) == (
            "out\n"
        )
        kwargs = mock_run.call_args[1]
        assert kwargs["shell"] is False
        assert kwargs["cwd"] == tmp_path
        assert kwargs["capture_output"] is True

    @patch("subprocess.run")
    def test_not_captured(self, mock_run) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout=None)
        assert run_command(["flutter", "build", "ipa"], capture=False) == ""
        assert mock_run.call_args[1]["capture_output"] is False

    @patch("subprocess.run")
    def test_dry_run(self, mock_run) -> None:
        assert run_command(["security", "delete-keychain", "x"], dry_run=True) == ""
        mock_run.assert_not_called()

    @patch("subprocess.run")
    def test_failure(self, mock_run) -> None:
        mock_run.side_effect = subprocess.CalledProcessError(
            51, ["security"], stderr="bad password hunter2"
        )
        with pytest.raises(CommandError) as info:
            run_command(
                ["security", "unlock-keychain", "-p", "hunter2", "k"],
                secrets=["hunter2"],
            )
        assert info.value.returncode == 51
        assert "hunter2" not in str(info.value)
        assert "hunter2" not in info.value.command
        assert SECRET_MASK in info.value.command

    @patch("subprocess.run", side_effect=FileNotFoundError("no such tool"))
    def test_missing_tool(self, mock_run) -> None:
        with pytest.raises(CommandError) as info:
            run_command(["security", "list-keychains"])
        assert info.value.returncode == 127

    def test_logs_masked_command(self, caplog) -> None:
        log = logging.getLogger("test")
        with caplog.at_level(logging.DEBUG):
            run_command(
                ["security", "create-keychain", "-p", "hunter2", "k"],
                dry_run=True,
                log=log,
                secrets=["hunter2"],
            )
        assert "create-keychain" in caplog.text
        assert "hunter2" not in caplog.text


class TestHelpers:
    """Tests for small helpers."""

    def test_mask_secrets_skips_empty(self) -> None:
        assert mask_secrets("a b c", [None, "", "b"]) == f"a {SECRET_MASK} c"

    def test_parse_keychain_list(self) -> None:
        output = (
            '    "/Users/me/Library/Keychains/login.keychain-db"\n'
            "\n"
            '    "/Library/Keychains/System.keychain"\n'
        )
        assert parse_keychain_list(output) == [
            "/Users/me/Library/Keychains/login.keychain-db",
            "/Library/Keychains/System.keychain",
        ]

    def test_parse_keychain_list_empty(self) -> None:
        assert parse_keychain_list("") == []

    def test_export_options_profile_name_defaults(self) -> None:
        options = export_options("ABCD123456", "com.example.app")
        assert options["provisioningProfiles"] == {
            "com.example.app": "com.example.app"
        }

    def test_formatter_without_color(self) -> None:
        record = logging.LogRecord(
            "CredentialManager", logging.INFO, __file__, 1, "hello", None, None
        )
        record.funcName = "setup_certificates"
        text = CustomFormatter(use_color=False).format(record)
        assert "INFO - CredentialManager.setup_certificates - hello" in text
        assert "\x1b[" not in text
