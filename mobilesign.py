#!/usr/bin/env python3
"""mobilesign - ephemeral code-signing credentials for mobile release builds.

This module provides tools for:
1. Provisioning a disposable keychain holding a P12 signing certificate
2. Installing a provisioning profile under a build-scoped name
3. Writing the export-options plist consumed by `flutter build ipa`
4. Guaranteeing all of the above is removed after the build, including
   when the build fails or the process is interrupted

Every resource created for one build is named after a build identifier
derived from the team ID and bundle ID, so concurrent builds on one host
never touch each other's keychain, profile or plist.

Usage (CLI):
    # Build an IPA inside a signing session
    mobilesign run --p12-cert dist.p12 --cert-password secret \\
        --provisioning-profile app.mobileprovision \\
        --team-id ABCD123456 --bundle-id com.example.app

    # Remove leftovers of a build that was killed
    mobilesign cleanup --team-id ABCD123456 --bundle-id com.example.app

Usage (API):
    from mobilesign import CredentialManager, SigningMaterial

    material = SigningMaterial(
        certificate_path="dist.p12",
        certificate_password="secret",
        provisioning_profile_path="app.mobileprovision",
        team_id="ABCD123456",
        bundle_id="com.example.app",
    )
    with CredentialManager(material, project_root=".") as manager:
        plist = manager.create_export_options_plist()
        ...  # run the packaging command

    # Before starting builds on worker threads, from the main thread:
    get_termination_guard().install()
"""

import argparse
import base64
import binascii
import datetime
import enum
import logging
import os
import plistlib
import re
import shutil
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import NamedTuple

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

# ----------------------------------------------------------------------------
# Constants

__version__ = "0.1.0"

# Type aliases
Pathlike = Path | str
Runner = Callable[[list[str]], str]

# Keychain file names are truncated by the security tool past this length
MAX_IDENTIFIER_LENGTH = 50

KEYCHAIN_PREFIX = "flutter_"
KEYCHAIN_SUFFIX = ".keychain"
PROFILE_SUFFIX = ".mobileprovision"
EXPORT_OPTIONS_PREFIX = "export_options_"
TEMP_DIRECTORY_PREFIX = "signing_"
CERTIFICATE_FILENAME = "certificate.p12"

# Relative to the user's home directory
KEYCHAINS_DIR = Path("Library") / "Keychains"
PROFILES_DIR = Path("Library") / "MobileDevice" / "Provisioning Profiles"

# Relative to the project root
BUILD_DIR = "build"

CODESIGN_TOOL = "/usr/bin/codesign"
KEY_PARTITION_LIST = "apple-tool:,apple:"

DEFAULT_EXPORT_METHOD = "app-store"
EXPORT_METHODS = [
    "app-store",
    "ad-hoc",
    "enterprise",
    "development",
    "release-testing",
    "app-store-connect",
    "debugging",
]

# Placeholder substituted with the export-options plist path
EXPORT_OPTIONS_PLACEHOLDER = "{export_options}"

DEFAULT_BUILD_COMMAND = [
    "flutter",
    "build",
    "ipa",
    "--release",
    "--export-options-plist",
    EXPORT_OPTIONS_PLACEHOLDER,
]

# Environment variable names
ENV_P12_CERT = "IOS_P12_CERT"
ENV_P12_BASE64 = "IOS_P12_BASE64"
ENV_CERT_PASSWORD = "IOS_CERT_PASSWORD"
ENV_PROVISIONING_PROFILE = "IOS_PROVISIONING_PROFILE"
ENV_TEAM_ID = "IOS_TEAM_ID"
ENV_BUNDLE_ID = "IOS_BUNDLE_ID"

# Replacement for secrets in logged command lines
SECRET_MASK = "******"

# Certificates and profiles are small; anything bigger is a wrong path
MAX_FILE_SIZE = 10 * 1024 * 1024

# ----------------------------------------------------------------------------
# Optional dotenv support


def _load_dotenv() -> None:
    """Attempt to load .env file if python-dotenv is available."""
    try:
        from dotenv import load_dotenv

        load_dotenv()
    except ImportError:
        pass


_load_dotenv()

# ----------------------------------------------------------------------------
# Error handling


class SigningError(Exception):
    """Base exception class for mobilesign errors."""


class CommandError(SigningError):
    """Exception raised when a command fails."""

    def __init__(
        self, command: str, returncode: int, output: str | None = None
    ):
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"Command '{command}' failed with return code {returncode}"
        if output:
            message = f"{message}: {output.strip()}"
        super().__init__(message)


class FileError(SigningError):
    """Exception raised when a file operation fails."""


class ConfigurationError(SigningError):
    """Exception raised when signing material or configuration is invalid."""


class ValidationError(ConfigurationError):
    """Exception raised when a supplied file fails validation."""


class KeychainError(SigningError):
    """Exception raised when temporary keychain setup fails."""


class ProvisioningProfileError(SigningError):
    """Exception raised when provisioning profile installation fails."""


class CleanupError(SigningError):
    """Exception raised when one or more resources could not be removed.

    The individual failures are kept in ``errors``.
    """

    def __init__(self, message: str, errors: Iterable[Exception] = ()):
        self.errors = list(errors)
        if self.errors:
            details = "; ".join(str(e) for e in self.errors)
            message = f"{message}: {details}"
        super().__init__(message)


# ----------------------------------------------------------------------------
# Configuration file support


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load configuration from a TOML file.

    Searches for configuration in the following order:
    1. Explicit config_path if provided
    2. .mobilesign.toml in current directory
    3. mobilesign.toml in current directory

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dictionary (empty if no config found)

    Raises:
        ConfigurationError: If the explicit file is missing or a file
            cannot be parsed

    Example .mobilesign.toml:
        [ios]
        team_id = "ABCD123456"
        bundle_id = "com.example.app"
        p12_cert = "certs/distribution.p12"
        provisioning_profile = "certs/app.mobileprovision"
        export_method = "app-store"
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        paths_to_try = [config_path]
    else:
        cwd = Path.cwd()
        paths_to_try = [
            cwd / ".mobilesign.toml",
            cwd / "mobilesign.toml",
        ]

    for path in paths_to_try:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data: dict[str, object] = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigurationError(
                    f"Cannot read config file {path}: {e}"
                ) from e
            return data

    return {}


def get_config_value(
    config: dict[str, object],
    section: str,
    key: str,
    default: str | None = None,
) -> str | None:
    """Get a value from config with section.key lookup.

    Args:
        config: Configuration dictionary
        section: Section name (e.g., "ios")
        key: Key name within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    value = section_config.get(key, default)
    if value is None or isinstance(value, str):
        return value
    return default


# Global config (loaded lazily)
_config: dict[str, object] | None = None


def get_config(config_path: Path | None = None) -> dict[str, object]:
    """Get the configuration, loading the default one if necessary."""
    global _config
    if config_path is not None:
        return load_config(config_path)
    if _config is None:
        _config = load_config()
    return _config


# ----------------------------------------------------------------------------
# File validation


def validate_file(path: Pathlike, max_size: int = MAX_FILE_SIZE) -> None:
    """Validate a signing input file before anything is created.

    Args:
        path: Path to the file to validate
        max_size: Maximum allowed file size in bytes

    Raises:
        ValidationError: If the file is missing, not a regular file,
            unreadable, empty or larger than max_size
    """
    path = Path(path)

    if not path.exists():
        raise ValidationError(f"File does not exist: {path}")

    if not path.is_file():
        raise ValidationError(f"Path is not a regular file: {path}")

    if not os.access(path, os.R_OK):
        raise ValidationError(f"File is not readable: {path}")

    try:
        size = path.stat().st_size
    except OSError as e:
        raise ValidationError(f"Cannot stat file {path}: {e}") from e

    if size == 0:
        raise ValidationError(f"File is empty (zero bytes): {path}")

    if size > max_size:
        raise ValidationError(
            f"File exceeds maximum size ({size} > {max_size} bytes): {path}"
        )


# ----------------------------------------------------------------------------
# Logging configuration


class CustomFormatter(logging.Formatter):
    """Custom logging formatting class with color support."""

    class color:
        """Text colors for terminal output."""

        white = "\x1b[97;20m"
        grey = "\x1b[38;20m"
        green = "\x1b[32;20m"
        yellow = "\x1b[33;20m"
        red = "\x1b[31;20m"
        bold_red = "\x1b[31;1m"
        reset = "\x1b[0m"

    cfmt = (
        f"{color.white}%(delta)s{color.reset} - "
        f"{{}}%(levelname)s{color.reset} - "
        f"{color.white}%(name)s.%(funcName)s{color.reset} - "
        f"{color.grey}%(message)s{color.reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(color.grey),
        logging.INFO: cfmt.format(color.green),
        logging.WARNING: cfmt.format(color.yellow),
        logging.ERROR: cfmt.format(color.red),
        logging.CRITICAL: cfmt.format(color.bold_red),
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.fmt = (
            "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with color if enabled."""
        if not self.use_color:
            log_fmt = self.fmt
        else:
            log_fmt = self.FORMATS.get(record.levelno, self.fmt)
        duration = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(debug: bool = True, use_color: bool = True) -> None:
    """Configure logging for the application.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter(use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
    )


# ----------------------------------------------------------------------------
# Command execution utilities


def mask_secrets(text: str, secrets: Iterable[str | None] = ()) -> str:
    """Replace every non-empty secret in text with SECRET_MASK."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, SECRET_MASK)
    return text


def run_command(
    command: list[str],
    cwd: Pathlike | None = None,
    dry_run: bool = False,
    log: logging.Logger | None = None,
    secrets: Iterable[str | None] = (),
    capture: bool = True,
) -> str:
    """Run a command and return its output.

    This is the consolidated command execution utility used throughout
    the module. Uses shell=False for security.

    Args:
        command: The command as a list of arguments
        cwd: Working directory for the command
        dry_run: If True, log command but don't execute (default: False)
        log: Optional logger for debug/dry-run output
        secrets: Values masked in logged command lines and errors
        capture: If False, output goes straight to the console

    Returns:
        The command stdout output (empty when not captured)

    Raises:
        CommandError: If the command fails or cannot be started
    """
    secrets = list(secrets)
    cmd_str = mask_secrets(" ".join(command), secrets)
    if log:
        log.debug("%s", cmd_str)
    if dry_run:
        if log:
            log.info("[DRY RUN] %s", cmd_str)
        return ""
    try:
        result = subprocess.run(
            command,
            shell=False,
            check=True,
            text=True,
            capture_output=capture,
            cwd=cwd,
        )
        return result.stdout or ""
    except subprocess.CalledProcessError as e:
        output = e.stderr or e.output
        if output:
            output = mask_secrets(output, secrets)
        raise CommandError(cmd_str, e.returncode, output) from e
    except OSError as e:
        raise CommandError(cmd_str, 127, str(e)) from e


# ----------------------------------------------------------------------------
# Build identifier

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def normalize_identifier(value: str) -> str:
    """Lower-case value, collapse non-alphanumeric runs to '_' and trim."""
    return _NON_ALNUM_RUN.sub("_", value.lower()).strip("_")


def generate_identifier(team_id: str, bundle_id: str) -> str:
    """Derive the build identifier that namespaces every build resource.

    The result is deterministic, contains only ``[a-z0-9_]``, never starts
    or ends with ``_`` and is at most MAX_IDENTIFIER_LENGTH characters.

    Example:
        >>> generate_identifier("ABC-123", "com.test.app-beta")
        'abc_123_com_test_app_beta'
    """
    identifier = (
        f"{normalize_identifier(team_id)}_{normalize_identifier(bundle_id)}"
    )
    return identifier[:MAX_IDENTIFIER_LENGTH].strip("_")


# ----------------------------------------------------------------------------
# Plist and file utilities


def export_options(
    team_id: str,
    bundle_id: str | None = None,
    profile_name: str | None = None,
    method: str = DEFAULT_EXPORT_METHOD,
) -> dict[str, object]:
    """Build the export-options dictionary for the packaging tool.

    Manual signing with an explicit profile mapping is only requested
    when a bundle ID is known.
    """
    options: dict[str, object] = {
        "method": method,
        "teamID": team_id,
        "uploadSymbols": False,
    }
    if bundle_id:
        options["signingStyle"] = "manual"
        options["provisioningProfiles"] = {
            bundle_id: profile_name or bundle_id
        }
    return options


def write_plist(path: Path, data: dict[str, object]) -> None:
    """Write data as an XML property list, creating parent folders."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        plistlib.dump(data, f, fmt=plistlib.FMT_XML)


def copy_file(src: Path, dst: Path) -> None:
    """Copy src to dst byte for byte, creating the destination folder."""
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dst)


def parse_keychain_list(output: str) -> list[str]:
    """Parse `security list-keychains` output into keychain paths.

    Each line looks like ``    "/Users/me/Library/Keychains/login.keychain-db"``.
    """
    keychains = []
    for line in output.splitlines():
        line = line.strip().strip('"')
        if line:
            keychains.append(line)
    return keychains


# ----------------------------------------------------------------------------
# Managed resources


class ResourceKind(enum.Enum):
    """Kinds of build-scoped resources the cleanup registry can remove."""

    KEYCHAIN = "keychain"
    PROVISIONING_PROFILE = "provisioning profile"
    PLIST_FILE = "plist file"
    TEMP_DIRECTORY = "temporary directory"


class ManagedResource(NamedTuple):
    """A resource created for one build."""

    kind: ResourceKind
    path: Path
    description: str = ""


def _remove_keychain(
    path: Path, runner: Runner, log: logging.Logger
) -> bool:
    if not path.exists():
        return False
    try:
        runner(["security", "delete-keychain", str(path)])
    except CommandError as e:
        # the file is still removed, the search list entry goes stale
        log.warning("security delete-keychain failed for %s: %s", path, e)
        path.unlink(missing_ok=True)
    return True


def _remove_file(path: Path, runner: Runner, log: logging.Logger) -> bool:
    if not path.exists():
        return False
    path.unlink()
    return True


def _remove_directory(
    path: Path, runner: Runner, log: logging.Logger
) -> bool:
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


_REMOVERS = {
    ResourceKind.KEYCHAIN: _remove_keychain,
    ResourceKind.PROVISIONING_PROFILE: _remove_file,
    ResourceKind.PLIST_FILE: _remove_file,
    ResourceKind.TEMP_DIRECTORY: _remove_directory,
}


def delete_resource(
    resource: ManagedResource,
    runner: Runner,
    log: logging.Logger | None = None,
) -> bool:
    """Remove a single managed resource.

    A resource that does not exist is already clean and is not an error.
    Keychains are deleted with `security delete-keychain`, falling back to
    removing the file when the command fails.

    Args:
        resource: The resource to remove
        runner: Command runner used for keychain deletion
        log: Optional logger

    Returns:
        True if something was removed, False if it was already gone

    Raises:
        CleanupError: If the resource exists and could not be removed
    """
    log = log or logging.getLogger("mobilesign")
    remover = _REMOVERS.get(resource.kind)
    if remover is None:
        raise CleanupError(f"Unknown resource kind: {resource.kind!r}")

    path = Path(resource.path)
    description = resource.description or resource.kind.value
    try:
        removed = remover(path, runner, log)
    except OSError as e:
        raise CleanupError(
            f"Failed to remove {description} {path}: {e}"
        ) from e

    if removed:
        log.info("removed %s: %s", description, path)
    return removed


# ----------------------------------------------------------------------------
# Cleanup registry


class CleanupRegistry:
    """Thread-safe ledger of the resources created for each build.

    Maps a build identifier to the ordered list of resources registered
    for it. Cleanup is idempotent: an identifier's entry is dropped before
    its resources are removed, so a second cleanup of the same identifier
    (from an error path, a signal handler or a retry) is a no-op even if
    the first one reported failures.

    The lock is re-entrant so a signal handler that interrupts the main
    thread while it holds the lock can still clean up.

    Args:
        runner: Command runner used for keychain deletion

    Example:
        registry = CleanupRegistry()
        registry.register("abcd123456_com_example_app", resources)
        registry.cleanup("abcd123456_com_example_app")
    """

    def __init__(self, runner: Runner | None = None) -> None:
        self._lock = threading.RLock()
        self._resources: dict[str, list[ManagedResource]] = {}
        self.runner = runner or self.run_command
        self.log = logging.getLogger(self.__class__.__name__)

    def run_command(self, command: list[str]) -> str:
        """Run a command and return its output."""
        return run_command(command, log=self.log)

    def register(
        self, identifier: str, resources: Iterable[ManagedResource]
    ) -> None:
        """Associate resources with identifier, replacing any prior list."""
        resources = list(resources)
        with self._lock:
            self._resources[identifier] = resources
        self.log.info(
            "registered %d resource(s) for cleanup [%s]",
            len(resources),
            identifier,
        )

    def cleanup(self, identifier: str) -> None:
        """Remove every resource registered for identifier, in order.

        Raises:
            CleanupError: If any resource could not be removed. The entry
                is forgotten regardless.
        """
        with self._lock:
            resources = self._resources.pop(identifier, None)
        if resources is None:
            return

        errors: list[Exception] = []
        for resource in resources:
            try:
                delete_resource(resource, self.runner, self.log)
            except CleanupError as e:
                errors.append(e)

        if errors:
            raise CleanupError(f"Cleanup incomplete [{identifier}]", errors)
        self.log.info("cleanup complete [%s]", identifier)

    def cleanup_all(self) -> None:
        """Clean up every registered identifier.

        Raises:
            CleanupError: Aggregating the failures of all identifiers
        """
        with self._lock:
            identifiers = list(self._resources)

        errors: list[Exception] = []
        for identifier in identifiers:
            try:
                self.cleanup(identifier)
            except CleanupError as e:
                errors.extend(e.errors or [e])

        if errors:
            raise CleanupError("Bulk cleanup incomplete", errors)

    def release(self, identifier: str) -> list[ManagedResource]:
        """Forget identifier and return its resources without removing them.

        Like cleanup(), only one caller receives the resources.
        """
        with self._lock:
            return self._resources.pop(identifier, [])

    def get_registered_resources(self) -> dict[str, list[ManagedResource]]:
        """Return a copy of the current identifier to resources map."""
        with self._lock:
            return {k: list(v) for k, v in self._resources.items()}


_registry = CleanupRegistry()


def get_cleanup_registry() -> CleanupRegistry:
    """Get the process-wide cleanup registry."""
    return _registry


# ----------------------------------------------------------------------------
# Termination guard


class TerminationGuard:
    """Run cleanup callbacks before the process dies from a signal.

    One guard serves every build in the process. A build attaches its
    cleanup callback once its resources are registered and detaches it
    after cleanup. On SIGINT or SIGTERM the handler runs every attached
    callback, newest first, then the guard's own cleanup, then exits with
    status 128 + signal number.

    Signal handlers can only be installed from the main thread. Builds
    running on worker threads are covered when the guard was installed
    from the main thread beforehand, as the ``run`` command does.
    Otherwise attach() logs a warning and the build's own cleanup path is
    the only safety net. A guard installed by attach() is removed by the
    detach() that leaves it without callbacks; one installed by install()
    stays.

    Args:
        cleanup: Optional callable always run when a signal arrives
        signals: Signals to handle (default: SIGINT, SIGTERM)
        exit_func: Called with the exit status after cleanup
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(
        self,
        cleanup: Callable[[], object] | None = None,
        signals: Iterable[int] | None = None,
        exit_func: Callable[[int], object] = sys.exit,
    ) -> None:
        self.cleanup = cleanup
        self.signals = tuple(signals) if signals else self.SIGNALS
        self.exit_func = exit_func
        self._callbacks: list[Callable[[], object]] = []
        self._previous: dict[int, object] = {}
        self._installed_by_attach = False
        self._lock = threading.RLock()
        self.log = logging.getLogger(self.__class__.__name__)

    @property
    def installed(self) -> bool:
        return bool(self._previous)

    @property
    def callbacks(self) -> list[Callable[[], object]]:
        """Return a copy of the attached callbacks."""
        with self._lock:
            return list(self._callbacks)

    def install(self) -> bool:
        """Install the handler for every guarded signal.

        Returns:
            True if the handler is installed
        """
        with self._lock:
            if self._previous:
                return True
            if threading.current_thread() is not threading.main_thread():
                self.log.warning(
                    "termination guard not installed: not on the main thread"
                )
                return False
            for signum in self.signals:
                self._previous[signum] = signal.signal(signum, self._handle)
        self.log.debug(
            "termination guard installed for %s",
            ", ".join(signal.Signals(s).name for s in self.signals),
        )
        return True

    def uninstall(self) -> None:
        """Restore the handlers that were active before install()."""
        with self._lock:
            if not self._previous:
                return
            if threading.current_thread() is not threading.main_thread():
                self.log.warning(
                    "termination guard not removed: not on the main thread"
                )
                return
            for signum, handler in self._previous.items():
                if handler is None:
                    handler = signal.SIG_DFL
                signal.signal(signum, handler)
            self._previous.clear()
            self._installed_by_attach = False

    def attach(self, callback: Callable[[], object]) -> bool:
        """Run callback on termination, installing the guard if needed.

        Returns:
            True if the guard is installed
        """
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)
            if self._previous:
                return True
            self._installed_by_attach = self.install()
            return self._installed_by_attach

    def detach(self, callback: Callable[[], object]) -> None:
        """Stop running callback on termination."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            if not self._callbacks and self._installed_by_attach:
                self.uninstall()

    def _handle(self, signum: int, frame: object) -> None:
        name = signal.Signals(signum).name
        self.log.warning("received %s, removing signing resources", name)
        callbacks = self.callbacks[::-1]
        if self.cleanup is not None:
            callbacks.append(self.cleanup)
        for callback in callbacks:
            try:
                callback()
            except SigningError as e:
                self.log.error("cleanup after %s incomplete: %s", name, e)
        self.exit_func(128 + signum)


_guard: TerminationGuard | None = None
_guard_lock = threading.Lock()


def get_termination_guard() -> TerminationGuard:
    """Get the process-wide termination guard.

    Its own cleanup empties the process-wide cleanup registry, so every
    build registered there is removed on a signal.
    """
    global _guard
    with _guard_lock:
        if _guard is None:
            _guard = TerminationGuard(get_cleanup_registry().cleanup_all)
        return _guard


# ----------------------------------------------------------------------------
# Signing material


class SigningMaterial:
    """The signing inputs of one build.

    All fields are optional. Without a team ID no credential lifecycle is
    needed. A certificate is only imported when a password is present too,
    and may be given as a file path or as raw P12 bytes.

    Args:
        certificate_path: Path to the P12 certificate
        certificate_password: Password of the P12 certificate
        provisioning_profile_path: Path to the .mobileprovision file
        team_id: Apple developer team ID
        bundle_id: Application bundle ID
        certificate_data: Raw P12 bytes, used when no path is given
    """

    # (attribute, environment variable, config key)
    SOURCES = [
        ("certificate_path", ENV_P12_CERT, "p12_cert"),
        ("certificate_password", ENV_CERT_PASSWORD, "cert_password"),
        (
            "provisioning_profile_path",
            ENV_PROVISIONING_PROFILE,
            "provisioning_profile",
        ),
        ("team_id", ENV_TEAM_ID, "team_id"),
        ("bundle_id", ENV_BUNDLE_ID, "bundle_id"),
    ]

    def __init__(
        self,
        certificate_path: Pathlike | None = None,
        certificate_password: str | None = None,
        provisioning_profile_path: Pathlike | None = None,
        team_id: str | None = None,
        bundle_id: str | None = None,
        certificate_data: bytes | None = None,
    ) -> None:
        self.certificate_path = (
            Path(certificate_path) if certificate_path else None
        )
        self.certificate_password = certificate_password or None
        self.provisioning_profile_path = (
            Path(provisioning_profile_path)
            if provisioning_profile_path
            else None
        )
        self.team_id = team_id or None
        self.bundle_id = bundle_id or None
        self.certificate_data = certificate_data or None

    @classmethod
    def from_sources(
        cls,
        overrides: dict[str, str | None] | None = None,
        config: dict[str, object] | None = None,
        environ: dict[str, str] | None = None,
    ) -> "SigningMaterial":
        """Resolve signing material from options, environment and config.

        Precedence: overrides (command-line options) > environment
        variables > the [ios] section of the config file.

        Raises:
            ConfigurationError: If IOS_P12_BASE64 is not valid base64
        """
        overrides = overrides or {}
        config = config or {}
        environ = os.environ if environ is None else environ

        values: dict[str, str | None] = {}
        for attr, env_var, key in cls.SOURCES:
            values[attr] = (
                overrides.get(attr)
                or environ.get(env_var)
                or get_config_value(config, "ios", key)
            )

        certificate_data = None
        encoded = environ.get(ENV_P12_BASE64)
        if encoded and not values["certificate_path"]:
            try:
                certificate_data = base64.b64decode(encoded, validate=True)
            except binascii.Error as e:
                raise ConfigurationError(
                    f"{ENV_P12_BASE64} is not valid base64: {e}"
                ) from e

        return cls(certificate_data=certificate_data, **values)

    @property
    def is_configured(self) -> bool:
        return bool(self.team_id)

    @property
    def has_certificate(self) -> bool:
        return bool(
            (self.certificate_path or self.certificate_data)
            and self.certificate_password
        )

    @property
    def has_profile(self) -> bool:
        return self.provisioning_profile_path is not None

    def __repr__(self) -> str:
        password = SECRET_MASK if self.certificate_password else None
        return (
            f"{self.__class__.__name__}("
            f"certificate_path={self.certificate_path!r}, "
            f"certificate_password={password!r}, "
            f"provisioning_profile_path={self.provisioning_profile_path!r}, "
            f"team_id={self.team_id!r}, bundle_id={self.bundle_id!r})"
        )


# ----------------------------------------------------------------------------
# Credential manager


class CredentialManager:
    """Provision and tear down the signing identity of one build.

    Setup registers every resource the build will create with the cleanup
    registry before creating any of them, attaches to the termination guard,
    then creates a temporary keychain holding the certificate and installs
    the provisioning profile. A failure at any step removes whatever was
    created before the error propagates. In dry-run mode the registry and
    the file system are left untouched.

    The manager is a context manager: setup runs on enter, cleanup on
    every exit path.

    Args:
        material: Signing inputs (None means nothing to do)
        project_root: Flutter project root; plists go under its build/
        runner: Command runner (default: run subprocesses)
        registry: Cleanup registry (default: the process-wide one)
        home: Home directory holding Library/ (default: the user's)
        export_method: Distribution method for the export options
        dry_run: If True, log commands without running them or writing
        guard: True for the process-wide termination guard, a
            TerminationGuard to use instead, or False for none

    Example:
        with CredentialManager(material, project_root=".") as manager:
            plist = manager.create_export_options_plist()
    """

    # (attribute, kind, description), in cleanup order
    TRACKED_RESOURCES = [
        ("temp_keychain_path", ResourceKind.KEYCHAIN, "temporary keychain"),
        (
            "temp_directory_path",
            ResourceKind.TEMP_DIRECTORY,
            "certificate directory",
        ),
        (
            "installed_profile_path",
            ResourceKind.PROVISIONING_PROFILE,
            "provisioning profile",
        ),
        ("temp_plist_path", ResourceKind.PLIST_FILE, "export options"),
    ]

    def __init__(
        self,
        material: SigningMaterial | None,
        project_root: Pathlike = ".",
        runner: Runner | None = None,
        registry: CleanupRegistry | None = None,
        home: Pathlike | None = None,
        export_method: str = DEFAULT_EXPORT_METHOD,
        dry_run: bool = False,
        guard: bool | TerminationGuard = True,
    ) -> None:
        self.material = material or SigningMaterial()
        self.project_root = Path(project_root)
        self.home = Path(home) if home else Path.home()
        self.registry = (
            registry if registry is not None else get_cleanup_registry()
        )
        if export_method not in EXPORT_METHODS:
            raise ConfigurationError(
                f"Unknown export method '{export_method}'. "
                f"Expected one of: {', '.join(EXPORT_METHODS)}"
            )
        self.export_method = export_method
        self.dry_run = dry_run
        self.log = logging.getLogger(self.__class__.__name__)
        self.runner = runner or self.run_command

        self.identifier = ""
        if self.material.is_configured:
            self.identifier = generate_identifier(
                self.material.team_id or "", self.material.bundle_id or ""
            )

        # None until created, reset to None once removed
        self.temp_keychain_path: Path | None = None
        self.temp_directory_path: Path | None = None
        self.installed_profile_path: Path | None = None
        self.temp_plist_path: Path | None = None

        self.guard: TerminationGuard | None = None
        if isinstance(guard, TerminationGuard):
            self.guard = guard
        elif guard:
            self.guard = get_termination_guard()
        self._registered = False

    def run_command(self, command: list[str]) -> str:
        """Run a command in the project root with secrets masked."""
        return run_command(
            command,
            cwd=self.project_root,
            dry_run=self.dry_run,
            log=self.log,
            secrets=[self.material.certificate_password],
        )

    # -- planned resource locations

    @property
    def keychain_path(self) -> Path:
        name = f"{KEYCHAIN_PREFIX}{self.identifier}{KEYCHAIN_SUFFIX}"
        return self.home / KEYCHAINS_DIR / name

    @property
    def profile_path(self) -> Path:
        return self.home / PROFILES_DIR / f"{self.identifier}{PROFILE_SUFFIX}"

    @property
    def plist_path(self) -> Path:
        name = f"{EXPORT_OPTIONS_PREFIX}{self.identifier}.plist"
        return self.project_root / BUILD_DIR / name

    @property
    def temp_directory(self) -> Path:
        name = f"{TEMP_DIRECTORY_PREFIX}{self.identifier}"
        return self.project_root / BUILD_DIR / name

    def planned_resources(self) -> list[ManagedResource]:
        """Return every resource this build will create."""
        resources = []
        if self.material.has_certificate:
            resources.append(
                ManagedResource(
                    ResourceKind.KEYCHAIN,
                    self.keychain_path,
                    "temporary keychain",
                )
            )
            if not self.material.certificate_path:
                resources.append(
                    ManagedResource(
                        ResourceKind.TEMP_DIRECTORY,
                        self.temp_directory,
                        "certificate directory",
                    )
                )
        if self.material.has_profile:
            resources.append(
                ManagedResource(
                    ResourceKind.PROVISIONING_PROFILE,
                    self.profile_path,
                    "provisioning profile",
                )
            )
        resources.append(
            ManagedResource(
                ResourceKind.PLIST_FILE, self.plist_path, "export options"
            )
        )
        return resources

    def get_unique_identifier(self) -> str:
        """Return the build identifier."""
        return self.identifier

    # -- setup

    def setup_certificates(self) -> None:
        """Provision the signing identity for this build.

        Does nothing when no signing material is configured.

        Raises:
            ValidationError: If an input file is unusable (nothing created)
            KeychainError: If a keychain step fails (rolled back)
            ProvisioningProfileError: If the profile copy fails (rolled back)
        """
        if not self.material.is_configured:
            if self.material.has_certificate or self.material.has_profile:
                self.log.warning(
                    "no team ID given, ignoring certificate and profile"
                )
            return

        self.log.info("setting up signing credentials [%s]", self.identifier)
        self._validate_material()
        self.register_cleanup_resources()
        if self.guard:
            self.guard.attach(self.force_cleanup_all)

        try:
            if self.material.has_certificate:
                self.setup_temporary_keychain()
            elif self.material.certificate_path or self.material.certificate_data:
                self.log.warning(
                    "certificate given without password, skipping keychain"
                )
            if self.material.has_profile:
                self.install_provisioning_profile()
        except BaseException:
            self._rollback()
            raise

    def _validate_material(self) -> None:
        if self.material.has_certificate and self.material.certificate_path:
            validate_file(self.material.certificate_path)
        if self.material.provisioning_profile_path:
            validate_file(self.material.provisioning_profile_path)

    def _rollback(self) -> None:
        self.log.warning("setup failed, rolling back [%s]", self.identifier)
        try:
            self.force_cleanup_all()
        except CleanupError as e:
            self.log.error("rollback incomplete: %s", e)
        finally:
            if self.guard:
                self.guard.detach(self.force_cleanup_all)

    def register_cleanup_resources(self) -> None:
        """Register the planned resources with the cleanup registry once."""
        if self._registered:
            return
        if self.dry_run:
            self.log.info(
                "[DRY RUN] register %d resource(s) for cleanup [%s]",
                len(self.planned_resources()),
                self.identifier,
            )
            return
        self.registry.register(self.identifier, self.planned_resources())
        self._registered = True

    def _keychain_step(self, action: str, command: list[str]) -> str:
        try:
            return self.runner(command)
        except CommandError as e:
            raise KeychainError(f"Failed to {action}: {e}") from e

    def setup_temporary_keychain(self) -> None:
        """Create a keychain for this build and import the certificate.

        The keychain is prepended to the user search list so codesign
        finds the certificate while the user's keychains stay reachable.
        The certificate password doubles as the keychain password.
        """
        keychain = self.keychain_path
        password = self.material.certificate_password or ""
        certificate = self._certificate_file()

        self.log.info("creating temporary keychain: %s", keychain.name)
        self.temp_keychain_path = keychain
        if not self.dry_run:
            try:
                keychain.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise KeychainError(
                    f"Cannot create keychain folder {keychain.parent}: {e}"
                ) from e

        self._keychain_step(
            "create keychain",
            ["security", "create-keychain", "-p", password, str(keychain)],
        )
        self._keychain_step(
            "unlock keychain",
            ["security", "unlock-keychain", "-p", password, str(keychain)],
        )

        output = self._keychain_step(
            "read keychain search list",
            ["security", "list-keychains", "-d", "user"],
        )
        existing = [
            k for k in parse_keychain_list(output) if k != str(keychain)
        ]
        self.log.debug("current keychains: %s", ", ".join(existing))
        self._keychain_step(
            "update keychain search list",
            ["security", "list-keychains", "-d", "user", "-s", str(keychain)]
            + existing,
        )

        self.log.info("importing certificate into %s", keychain.name)
        self._keychain_step(
            "import certificate",
            [
                "security",
                "import",
                str(certificate),
                "-k",
                str(keychain),
                "-P",
                password,
                "-T",
                CODESIGN_TOOL,
            ],
        )
        self._keychain_step(
            "set key partition list",
            [
                "security",
                "set-key-partition-list",
                "-S",
                KEY_PARTITION_LIST,
                "-s",
                "-k",
                password,
                str(keychain),
            ],
        )
        self.log.info("certificate imported [%s]", self.identifier)

    def _certificate_file(self) -> Path:
        """Return the P12 path, writing certificate_data out if needed."""
        if self.material.certificate_path:
            return self.material.certificate_path

        directory = self.temp_directory
        certificate = directory / CERTIFICATE_FILENAME
        self.temp_directory_path = directory
        if self.dry_run:
            return certificate
        try:
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            # created owner-only, a leftover is replaced rather than reused
            certificate.unlink(missing_ok=True)
            fd = os.open(
                certificate, os.O_CREAT | os.O_WRONLY | os.O_EXCL, 0o600
            )
            with os.fdopen(fd, "wb") as f:
                f.write(self.material.certificate_data or b"")
        except OSError as e:
            raise KeychainError(
                f"Cannot write certificate to {certificate}: {e}"
            ) from e
        return certificate

    def install_provisioning_profile(self) -> None:
        """Copy the profile into the user's provisioning profiles folder."""
        source = self.material.provisioning_profile_path
        if source is None:
            return
        target = self.profile_path
        self.installed_profile_path = target
        if self.dry_run:
            self.log.info("[DRY RUN] copy %s -> %s", source, target)
            return
        try:
            copy_file(source, target)
        except OSError as e:
            raise ProvisioningProfileError(
                f"Cannot install provisioning profile {source}: {e}"
            ) from e
        self.log.info("installed provisioning profile: %s", target.name)

    # -- export options

    def create_export_options_plist(self) -> Path:
        """Write the export-options plist for this build.

        Returns:
            Path to the plist file

        Raises:
            ConfigurationError: If no signing material is configured
            FileError: If the file cannot be written
        """
        if not self.material.is_configured:
            raise ConfigurationError(
                "No signing material configured (team ID required) "
                "for export options"
            )

        options = export_options(
            team_id=self.material.team_id or "",
            bundle_id=self.material.bundle_id,
            profile_name=self.identifier,
            method=self.export_method,
        )
        path = self.plist_path
        self.temp_plist_path = path
        if self.dry_run:
            self.log.info("[DRY RUN] write %s", path)
            return path
        try:
            write_plist(path, options)
        except OSError as e:
            raise FileError(f"Cannot write export options {path}: {e}") from e
        self.log.info("wrote export options: %s", path)
        return path

    # -- cleanup

    def force_cleanup_all(self) -> None:
        """Remove every resource this build created.

        Each recorded resource is removed independently. The registry then
        drops this build's entry, and any registered resource not already
        attempted here is removed too. Safe to call any number of times,
        from any exit path. In dry-run mode removals are only logged.

        Raises:
            CleanupError: If any resource could not be removed
        """
        if not self.material.is_configured:
            return

        if self.dry_run:
            for attr, _, description in self.TRACKED_RESOURCES:
                path = getattr(self, attr)
                if path is not None:
                    self.log.info("[DRY RUN] remove %s: %s", description, path)
                    setattr(self, attr, None)
            return

        self.log.info("removing signing resources [%s]", self.identifier)
        errors: list[Exception] = []
        attempted = set()
        for attr, kind, description in self.TRACKED_RESOURCES:
            path = getattr(self, attr)
            if path is None:
                continue
            attempted.add(path)
            try:
                delete_resource(
                    ManagedResource(kind, path, description),
                    self.runner,
                    self.log,
                )
            except CleanupError as e:
                errors.append(e)
            else:
                setattr(self, attr, None)

        for resource in self.registry.release(self.identifier):
            if resource.path in attempted:
                continue
            try:
                delete_resource(resource, self.runner, self.log)
            except CleanupError as e:
                errors.append(e)
        self._registered = False

        if errors:
            raise CleanupError(f"Cleanup incomplete [{self.identifier}]", errors)
        self.log.info("signing resources removed [%s]", self.identifier)

    def cleanup_certificates(self) -> None:
        """Post-build cleanup: force_cleanup_all with timing."""
        start = time.monotonic()
        self.log.info("cleaning up certificates [%s]", self.identifier)
        try:
            self.force_cleanup_all()
        finally:
            if self.guard:
                self.guard.detach(self.force_cleanup_all)
            self.log.info(
                "certificate cleanup finished in %.2fs [%s]",
                time.monotonic() - start,
                self.identifier,
            )

    def cleanup_stale(self) -> None:
        """Remove leftovers of an earlier build with the same identifier.

        Used after a build was killed before it could clean up.

        Raises:
            ConfigurationError: If no signing material is configured
            CleanupError: If any leftover could not be removed
        """
        if not self.material.is_configured:
            raise ConfigurationError(
                "No signing material configured (team ID required)"
            )
        self.log.info("removing stale resources [%s]", self.identifier)
        if self.dry_run:
            for resource in self.planned_resources():
                self.log.info(
                    "[DRY RUN] remove %s: %s", resource.description, resource.path
                )
            return
        self.registry.register(self.identifier, self.planned_resources())
        self.registry.cleanup(self.identifier)

    def __enter__(self) -> "CredentialManager":
        self.setup_certificates()
        return self

    def __exit__(self, *args: object) -> None:
        try:
            self.cleanup_certificates()
        except CleanupError as e:
            self.log.warning("error while removing signing resources: %s", e)


# ----------------------------------------------------------------------------
# Functional API


def run_signed_build(
    manager: CredentialManager,
    command: list[str] | None = None,
) -> Path | None:
    """Run a packaging command inside a signing session.

    Every EXPORT_OPTIONS_PLACEHOLDER in command is replaced with the
    export-options plist path. Cleanup runs whatever the outcome.

    Args:
        manager: Credential manager for the build
        command: Command to run (default: DEFAULT_BUILD_COMMAND)

    Returns:
        Path to the export-options plist, or None without signing material

    Raises:
        ConfigurationError: If command needs export options but no
            signing material is configured
        CommandError: If the command fails
    """
    command = list(command or DEFAULT_BUILD_COMMAND)
    with manager:
        plist = None
        if manager.material.is_configured:
            plist = manager.create_export_options_plist()
        elif any(EXPORT_OPTIONS_PLACEHOLDER in arg for arg in command):
            raise ConfigurationError(
                "Command needs export options but no team ID is configured"
            )
        if plist is not None:
            command = [
                arg.replace(EXPORT_OPTIONS_PLACEHOLDER, str(plist))
                for arg in command
            ]
        run_command(
            command,
            cwd=manager.project_root,
            dry_run=manager.dry_run,
            log=manager.log,
            secrets=[manager.material.certificate_password],
            capture=False,
        )
    return plist


# ----------------------------------------------------------------------------
# Command-line interface


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    """Add logging options to a parser."""
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )


def _add_signing_options(parser: argparse.ArgumentParser) -> None:
    """Add signing material options to a parser."""
    parser.add_argument(
        "--p12-cert",
        metavar="FILE",
        help=f"P12 certificate (or set {ENV_P12_CERT} / {ENV_P12_BASE64})",
    )
    parser.add_argument(
        "--cert-password",
        metavar="PASSWORD",
        help=f"certificate password (prefer {ENV_CERT_PASSWORD})",
    )
    parser.add_argument(
        "--provisioning-profile",
        metavar="FILE",
        help=f".mobileprovision file (or set {ENV_PROVISIONING_PROFILE})",
    )
    parser.add_argument(
        "--team-id",
        metavar="ID",
        help=f"developer team ID (or set {ENV_TEAM_ID})",
    )
    parser.add_argument(
        "--bundle-id",
        metavar="ID",
        help=f"application bundle ID (or set {ENV_BUNDLE_ID})",
    )
    parser.add_argument(
        "--export-method",
        choices=EXPORT_METHODS,
        help=f"export method (default: {DEFAULT_EXPORT_METHOD})",
    )
    parser.add_argument(
        "-C",
        "--project-root",
        default=".",
        metavar="DIR",
        help="Flutter project root (default: current directory)",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="config file (default: .mobilesign.toml or mobilesign.toml)",
    )
    _add_common_options(parser)


def _manager_from_args(
    args: argparse.Namespace, dry_run: bool = False
) -> CredentialManager:
    """Build a CredentialManager from parsed signing options."""
    config = get_config(Path(args.config) if args.config else None)
    material = SigningMaterial.from_sources(
        {
            "certificate_path": args.p12_cert,
            "certificate_password": args.cert_password,
            "provisioning_profile_path": args.provisioning_profile,
            "team_id": args.team_id,
            "bundle_id": args.bundle_id,
        },
        config=config,
    )
    export_method = args.export_method or get_config_value(
        config, "ios", "export_method", DEFAULT_EXPORT_METHOD
    )
    return CredentialManager(
        material,
        project_root=args.project_root,
        export_method=export_method or DEFAULT_EXPORT_METHOD,
        dry_run=dry_run,
    )


def _cmd_identifier(args: argparse.Namespace) -> None:
    """Handle 'identifier' subcommand."""
    print(generate_identifier(args.team_id, args.bundle_id or ""))


def _cmd_run(args: argparse.Namespace) -> None:
    """Handle 'run' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mobilesign")

    command = list(args.build_command or [])
    if command and command[0] == "--":
        command = command[1:]

    get_termination_guard().install()
    manager = _manager_from_args(args, dry_run=args.dry_run)
    if not manager.material.is_configured:
        log.warning("no team ID configured, running without signing session")
    try:
        run_signed_build(manager, command or None)
    except CommandError as e:
        log.error("%s", e)
        sys.exit(e.returncode or 1)
    log.info("Build finished")


def _cmd_cleanup(args: argparse.Namespace) -> None:
    """Handle 'cleanup' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("mobilesign")

    manager = _manager_from_args(args)
    manager.cleanup_stale()
    log.info("Cleaned: %s", manager.get_unique_identifier())


def _cmd_export_options(args: argparse.Namespace) -> None:
    """Handle 'export-options' subcommand."""
    setup_logging(args.verbose, not args.no_color)

    manager = _manager_from_args(args)
    print(manager.create_export_options_plist())


def main() -> None:
    """Command line interface for mobilesign."""
    try:
        parser = argparse.ArgumentParser(
            prog="mobilesign",
            description=(
                "Provision ephemeral iOS signing credentials for a build "
                "and remove them afterwards."
            ),
            epilog=(
                "Examples:\n"
                "  mobilesign identifier ABCD123456 com.example.app\n"
                "  mobilesign run --team-id ABCD123456 --bundle-id com.example.app \\\n"
                "      --p12-cert dist.p12 --provisioning-profile app.mobileprovision\n"
                "  mobilesign cleanup --team-id ABCD123456 --bundle-id com.example.app\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {__version__}",
        )

        subparsers = parser.add_subparsers(
            title="commands",
            dest="command",
            required=True,
        )

        # --- identifier subcommand ---
        identifier_parser = subparsers.add_parser(
            "identifier",
            help="print the build identifier for a team and bundle ID",
            description="Print the identifier that names build resources.",
        )
        identifier_parser.add_argument("team_id", help="developer team ID")
        identifier_parser.add_argument(
            "bundle_id",
            nargs="?",
            help="application bundle ID",
        )
        identifier_parser.set_defaults(func=_cmd_identifier)

        # --- run subcommand ---
        run_parser = subparsers.add_parser(
            "run",
            help="run a packaging command inside a signing session",
            description=(
                "Set up a temporary keychain and provisioning profile, run "
                "the packaging command, then remove them. "
                f"'{EXPORT_OPTIONS_PLACEHOLDER}' in the command is replaced "
                "with the export-options plist path."
            ),
            epilog=(
                "Examples:\n"
                "  mobilesign run --team-id ABCD123456 --bundle-id com.example.app\n"
                "  mobilesign run --team-id ABCD123456 -- flutter build ipa \\\n"
                f"      --release --export-options-plist {EXPORT_OPTIONS_PLACEHOLDER}\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        _add_signing_options(run_parser)
        run_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show commands without executing",
        )
        run_parser.add_argument(
            "build_command",
            nargs=argparse.REMAINDER,
            help=(
                "packaging command (default: "
                f"{' '.join(DEFAULT_BUILD_COMMAND)})"
            ),
        )
        run_parser.set_defaults(func=_cmd_run)

        # --- cleanup subcommand ---
        cleanup_parser = subparsers.add_parser(
            "cleanup",
            help="remove leftovers of an interrupted build",
            description=(
                "Remove the keychain, profile and plist left by an earlier "
                "build with the same team and bundle ID."
            ),
        )
        _add_signing_options(cleanup_parser)
        cleanup_parser.set_defaults(func=_cmd_cleanup)

        # --- export-options subcommand ---
        export_parser = subparsers.add_parser(
            "export-options",
            help="write the export-options plist and print its path",
            description="Write the export-options plist for a build.",
        )
        _add_signing_options(export_parser)
        export_parser.set_defaults(func=_cmd_export_options)

        args = parser.parse_args()
        args.func(args)

    except SigningError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
