"""Gate configuration loader.

Supports .hookgate/config.toml or .hookgate/config.yaml in the repository
root, an explicit path, or the HOOKGATE_CONFIG environment variable. Without
any file the built-in defaults apply: a compile check on commit and a test
run on push for C# sources.
"""

from __future__ import annotations

import json
import os
import shlex
import tomllib
from dataclasses import dataclass
from importlib.resources import files
from pathlib import Path
from typing import Any

import yaml
from jsonschema.validators import Draft202012Validator

from hookgate.errors import ConfigError
from hookgate.policy import DEFAULT_STATUSES, Policy
from hookgate.results import DEFAULT_ARTIFACT_PATTERN
from hookgate.types import ChangeStatus, HookEvent

CONFIG_DIR = ".hookgate"
CONFIG_CANDIDATES = ("config.toml", "config.yaml", "config.yml")
CONFIG_ENV = "HOOKGATE_CONFIG"

DEFAULT_PATTERNS = [".cs", ".csproj", ".sln"]


@dataclass(frozen=True)
class GateConfig:
    """Resolved configuration for one invocation."""

    policies: tuple[Policy, ...]
    case_insensitive: bool | None = None
    source: Path | None = None

    def for_event(self, event: HookEvent) -> list[Policy]:
        return [p for p in self.policies if event in p.events]


def default_config_data() -> dict[str, Any]:
    """Built-in configuration document, shaped like a config file."""
    if os.name == "nt":
        command = ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-File", "./build.ps1"]
        target_flag = "-Target"
    else:
        command = ["./build.sh"]
        target_flag = "--target"
    return {
        "defaults": {
            "command": command,
            "target_flag": target_flag,
            "artifact_pattern": DEFAULT_ARTIFACT_PATTERN,
            "case_insensitive": "auto",
        },
        "policies": [
            {
                "name": "compile",
                "events": ["pre-commit"],
                "patterns": list(DEFAULT_PATTERNS),
                "target": "compile",
                "kind": "compile",
            },
            {
                "name": "test",
                "events": ["pre-push"],
                "patterns": list(DEFAULT_PATTERNS),
                "target": "test",
                "kind": "test",
            },
        ],
    }


def load_schema() -> dict[str, Any]:
    text = files("hookgate.schemas").joinpath("config.schema.json").read_text(encoding="utf-8")
    return json.loads(text)


def validate_config_data(data: Any) -> None:
    """Validate a parsed config document against the packaged schema.

    Raises:
        ConfigError: Listing every violation with its path
    """
    validator = Draft202012Validator(load_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        messages = [
            f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
            for e in errors
        ]
        raise ConfigError(
            "Invalid hookgate configuration:\n" + "\n".join(f"  - {msg}" for msg in messages)
        )


def _split_command(value: str | list[str]) -> list[str]:
    if isinstance(value, str):
        return shlex.split(value, posix=os.name != "nt")
    return list(value)


def _build_policy(raw: dict[str, Any], defaults: dict[str, Any], repo_root: Path) -> Policy:
    name = raw["name"]
    command_value = raw.get("command", defaults.get("command"))
    if not command_value:
        raise ConfigError(f"policy '{name}' has no command and no default command is set")
    argv = _split_command(command_value)

    target = raw.get("target")
    if target:
        argv.extend([raw.get("target_flag", defaults.get("target_flag", "--target")), target])

    kind = raw.get("kind") or ("test" if target == "test" else "compile")
    statuses = (
        frozenset(ChangeStatus(s) for s in raw["statuses"]) if "statuses" in raw else DEFAULT_STATUSES
    )
    timeout = raw.get("timeout_seconds", defaults.get("timeout_seconds"))
    artifact_dir = raw.get("artifact_dir", defaults.get("artifact_dir", "."))
    artifact_pattern = raw.get("artifact_pattern", defaults.get("artifact_pattern"))

    return Policy(
        name=name,
        command=tuple(argv),
        patterns=tuple(raw["patterns"]),
        events=frozenset(HookEvent(e) for e in raw["events"]),
        statuses=statuses,
        kind=kind,
        timeout_seconds=float(timeout) if timeout else None,
        artifact_dir=(repo_root / artifact_dir).resolve(),
        artifact_pattern=artifact_pattern or None,
    )


def config_from_dict(data: dict[str, Any], repo_root: Path, source: Path | None = None) -> GateConfig:
    """Validate and resolve a config document into a GateConfig."""
    validate_config_data(data)
    builtin = default_config_data()
    defaults = {**builtin["defaults"], **data.get("defaults", {})}
    raw_policies = data["policies"] if "policies" in data else builtin["policies"]

    names = [p["name"] for p in raw_policies]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate policy names: {', '.join(duplicates)}")

    case_setting = defaults.get("case_insensitive", "auto")
    return GateConfig(
        policies=tuple(_build_policy(p, defaults, repo_root) for p in raw_policies),
        case_insensitive=None if case_setting == "auto" else bool(case_setting),
        source=source,
    )


def _read_document(path: Path) -> Any:
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f)
        if path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        if path.suffix == ".json":
            with open(path, encoding="utf-8") as f:
                return json.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML config at {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML config at {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Malformed JSON config at {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config at {path}: {e}") from e
    raise ConfigError(f"Unsupported config format: {path} (use .toml, .yaml or .json)")


def find_config_file(repo_root: Path, config_path: Path | None = None) -> Path | None:
    """Locate the config file to use, or None for built-in defaults.

    Priority order:
    1. Explicit config_path
    2. $HOOKGATE_CONFIG (relative paths resolve against repo_root)
    3. .hookgate/config.toml, .hookgate/config.yaml, .hookgate/config.yml
    """
    explicit = config_path
    if explicit is None and os.environ.get(CONFIG_ENV):
        explicit = Path(os.environ[CONFIG_ENV])
    if explicit is not None:
        resolved = explicit if explicit.is_absolute() else repo_root / explicit
        if not resolved.is_file():
            raise ConfigError(f"Config file not found: {resolved}")
        return resolved

    for name in CONFIG_CANDIDATES:
        candidate = repo_root / CONFIG_DIR / name
        if candidate.is_file():
            return candidate
    return None


def load_gate_config(repo_root: Path, config_path: Path | None = None) -> GateConfig:
    """Load and validate the gate configuration for a repository.

    Raises:
        ConfigError: If the config file is missing, malformed or invalid
    """
    path = find_config_file(repo_root, config_path)
    if path is None:
        return config_from_dict(default_config_data(), repo_root)
    data = _read_document(path)
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a mapping at the top level")
    return config_from_dict(data, repo_root, source=path)
