"""Configuration for the presubmit gate.

Settings are layered, later layers winning:

1. Defaults (a cargo project with Python system tests)
2. A YAML file: ``presubmit.yaml`` in the repository root, or the file named
   by ``--config`` / ``PRESUBMIT_CONFIG``. Settings live under a top-level
   ``presubmit:`` mapping.
3. Environment variables

Environment Variables:
    PRESUBMIT_CONFIG: Path to the YAML config file
    PRESUBMIT_BUILD_COMMAND: Build command (default: "cargo build")
    PRESUBMIT_TESTS_DIR: System test directory, relative to the root (default: "tests")
    PRESUBMIT_TEST_PATTERN: Glob for system test programs (default: "*.py")
    PRESUBMIT_TEST_RUNNER: Command prefix for each test program (default: none)
    PRESUBMIT_PRECHECK_COMMAND: Delegate invoked last (default: "./precheck.sh")
    PRESUBMIT_TIMEOUT: Per-command timeout in seconds (default: none)

Commands may be given as a string, split like a shell would split it, where a
bare ``|`` separates the segments of a pipe, or as an argv list.

Before a command runs, ``${NAME}`` is replaced by environment variable NAME,
which must be set. ``$$`` is a literal ``$``. Other braces and dollar signs
are passed through, e.g. ``awk '{print $1}'``.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from presubmit.errors import ConfigurationError, UnboundReferenceError
from presubmit.models.run import Command

CONFIG_FILENAME = "presubmit.yaml"
CONFIG_SECTION = "presubmit"
ENV_PREFIX = "PRESUBMIT_"


@dataclass(frozen=True)
class PresubmitConfig:
    """Settings for one presubmit run.

    Attributes:
        root: Repository root; every command runs here
        build_command: Build system invocation
        tests_dir: Directory holding system test programs, relative to root
        test_pattern: Glob selecting system test programs inside tests_dir
        test_runner: Command prefix each test program is run with
        precheck_command: Delegate invoked after all other stages pass
        timeout: Per-command timeout in seconds, None waits forever
    """

    root: Path = field(default_factory=Path.cwd)
    build_command: str | list[str] | None = "cargo build"
    tests_dir: str | None = "tests"
    test_pattern: str | None = "*.py"
    test_runner: str | list[str] | None = ""
    precheck_command: str | list[str] | None = "./precheck.sh"
    timeout: float | None = None

    def require(self, name: str) -> Any:
        """Return a setting, failing if it was left unset.

        Raises:
            UnboundReferenceError: If the setting is None or empty
        """
        value = getattr(self, name)
        if value is None or value == "" or value == []:
            raise UnboundReferenceError(name)
        return value

    def command(self, name: str) -> Command:
        """Return a required command setting parsed into pipe segments."""
        return parse_command(self.require(name), name=name)

    @property
    def runner_prefix(self) -> tuple[str, ...]:
        """The test runner prefix; empty means tests are executed directly."""
        if not self.test_runner:
            return ()
        segments = parse_command(self.test_runner, name="test_runner")
        if len(segments) != 1:
            raise ConfigurationError("test_runner cannot contain a pipe")
        return segments[0]

    @property
    def tests_path(self) -> Path:
        return self.root / self.require("tests_dir")


def parse_command(value: str | list[str] | list[list[str]], name: str = "command") -> Command:
    """Parse a command setting into argv segments.

    Examples:
        >>> parse_command("cargo build")
        (('cargo', 'build'),)
        >>> parse_command("cargo build --verbose | tee build.log")
        (('cargo', 'build', '--verbose'), ('tee', 'build.log'))
    """
    if isinstance(value, str):
        try:
            tokens = shlex.split(value)
        except ValueError as e:
            raise ConfigurationError(f"{name}: cannot parse {value!r}", cause=e) from e
        segments: list[tuple[str, ...]] = [()]
        for token in tokens:
            if token == "|":
                segments.append(())
            else:
                segments[-1] = segments[-1] + (token,)
    elif isinstance(value, (list, tuple)):
        if value and all(isinstance(part, (list, tuple)) for part in value):
            segments = [tuple(str(arg) for arg in part) for part in value]
        elif all(isinstance(part, (str, int, float)) for part in value):
            segments = [tuple(str(arg) for arg in value)]
        else:
            raise ConfigurationError(f"{name}: mixed argv list and pipe segments")
    else:
        raise ConfigurationError(f"{name}: expected a string or list, got {type(value).__name__}")

    if not segments or any(not segment for segment in segments):
        raise UnboundReferenceError(name, f"{name}: empty command or empty pipe segment")
    return tuple(segments)


def _setting_names() -> list[str]:
    return [f.name for f in fields(PresubmitConfig) if f.name != "root"]


def _coerce(name: str, value: Any) -> Any:
    if name == "timeout":
        if value is None or value == "":
            return None
        try:
            timeout = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"timeout: not a number: {value!r}", cause=e) from e
        if timeout <= 0:
            raise ConfigurationError(f"timeout: must be positive, got {timeout}")
        return timeout
    if name in ("tests_dir", "test_pattern") and value is not None and not isinstance(value, str):
        raise ConfigurationError(f"{name}: expected a string, got {type(value).__name__}")
    return value


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the presubmit section of a YAML config file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", cause=e) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at top level")

    section = data.get(CONFIG_SECTION, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{path}: '{CONFIG_SECTION}' must be a mapping")

    unknown = sorted(set(section) - set(_setting_names()))
    if unknown:
        raise ConfigurationError(f"{path}: unknown settings: {', '.join(unknown)}")
    return dict(section)


def settings_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect PRESUBMIT_* overrides from an environment mapping."""
    settings: dict[str, Any] = {}
    for name in _setting_names():
        key = ENV_PREFIX + name.upper()
        if key in environ:
            settings[name] = environ[key]
    return settings


def load_config(
    root: Path | str | None = None,
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> PresubmitConfig:
    """Build the effective configuration.

    Args:
        root: Repository root (default: current directory)
        config_path: Explicit YAML file; it must exist when given
        environ: Environment mapping (default: os.environ)

    Raises:
        ConfigurationError: On unreadable files, unknown keys or bad values
    """
    env = os.environ if environ is None else environ
    root_path = Path(root) if root is not None else Path.cwd()
    config = PresubmitConfig(root=root_path.resolve())

    explicit = config_path or env.get(ENV_PREFIX + "CONFIG")
    if explicit:
        path = Path(explicit)
        if not path.is_absolute():
            path = root_path / path
        if not path.is_file():
            raise ConfigurationError(f"Config file not found: {path}")
    else:
        path = root_path / CONFIG_FILENAME

    settings: dict[str, Any] = {}
    if path.is_file():
        settings.update(load_config_file(path))
    settings.update(settings_from_env(env))

    coerced = {name: _coerce(name, value) for name, value in settings.items()}
    return replace(config, **coerced)
