"""
Step loader — builds the ordered Step list from a YAML step file.

A step file looks like::

    steps:
      - name: docker-group
        critical: false
        when: null
        notice: "Log out and back in to use docker without sudo."
        probe:  {type: user_in_group, group: docker}
        action: {type: add_user_to_group, group: docker}

String parameters may reference options as ``{git_user_email}``;
``{{`` and ``}}`` produce literal braces.
"""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Any

from provisioner.core.config.loader import read_yaml_mapping
from provisioner.core.detection import probes
from provisioner.core.engine.step import Step
from provisioner.core.errors import ConfigError
from provisioner.core.execution import actions
from provisioner.core.execution.script_verify import (
    extract_script_url,
    extract_shell_args,
    is_curl_pipe_command,
)
from provisioner.core.models.config import TOGGLES, ProvisionConfig

logger = logging.getLogger(__name__)

BUNDLED_STEPS = "workstation.yml"

PROBE_TYPES: dict[str, type[probes.Probe]] = {
    "package_installed": probes.PackageInstalled,
    "repo_file_exists": probes.RepoFileExists,
    "user_in_group": probes.UserInGroup,
    "command_on_path": probes.CommandOnPath,
    "path_exists": probes.PathExists,
    "line_in_file": probes.LineInFile,
    "never": probes.Never,
}

ACTION_TYPES: dict[str, type[actions.Action]] = {
    "install_packages": actions.InstallPackages,
    "update_package_index": actions.UpdatePackageIndex,
    "install_deb": actions.InstallDeb,
    "write_apt_source": actions.WriteAptSource,
    "install_signing_key": actions.InstallSigningKey,
    "append_line": actions.AppendLine,
    "download": actions.DownloadAndCache,
    "run_script": actions.RunShellSnippet,
    "run_command": actions.RunCommand,
    "add_user_to_group": actions.CreateGroupAndAddUser,
}


def bundled_steps_path() -> Path:
    """Path of the step file shipped with the package."""
    return Path(str(resources.files("provisioner.data").joinpath(BUNDLED_STEPS)))


def _render(value: Any, values: dict[str, Any]) -> Any:
    """Substitute ``{option}`` placeholders in strings, recursively."""
    if isinstance(value, str):
        try:
            return value.format_map(values)
        except KeyError as e:
            raise ConfigError(f"Unknown placeholder {e} in {value!r}") from e
        except (ValueError, IndexError) as e:
            raise ConfigError(f"Malformed placeholder in {value!r}: {e}") from e
    if isinstance(value, list):
        return [_render(v, values) for v in value]
    if isinstance(value, dict):
        return {k: _render(v, values) for k, v in value.items()}
    return value


def _split_type(spec: Any, what: str) -> tuple[str, dict[str, Any]]:
    if not isinstance(spec, dict) or "type" not in spec:
        raise ConfigError(f"{what} must be a mapping with a 'type' key")
    params = dict(spec)
    return params.pop("type"), params


def build_probe(spec: Any, values: dict[str, Any]) -> probes.Probe:
    kind, params = _split_type(spec, "probe")
    if kind == "all_of":
        children = params.get("probes") or []
        return probes.AllOf([build_probe(child, values) for child in children])
    cls = PROBE_TYPES.get(kind)
    if cls is None:
        raise ConfigError(f"Unknown probe type '{kind}'. Valid: {', '.join(sorted(PROBE_TYPES))}")
    try:
        return cls(**_render(params, values))
    except TypeError as e:
        raise ConfigError(f"Invalid parameters for probe '{kind}': {e}") from e


def build_action(spec: Any, values: dict[str, Any]) -> actions.Action:
    kind, params = _split_type(spec, "action")
    if kind == "chain":
        children = params.get("actions") or []
        return actions.Chain([build_action(child, values) for child in children])

    # curl | sh in a plain command becomes download → verify → run
    if kind == "run_command" and isinstance(params.get("command"), str) \
            and is_curl_pipe_command(params["command"]):
        url = extract_script_url(params["command"])
        if url:
            logger.debug("Rewriting curl-pipe command to run_script: %s", url)
            kind = "run_script"
            params = {"url": url, "args": extract_shell_args(params["command"])}

    cls = ACTION_TYPES.get(kind)
    if cls is None:
        raise ConfigError(f"Unknown action type '{kind}'. Valid: {', '.join(sorted(ACTION_TYPES))}")
    try:
        return cls(**_render(params, values))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid parameters for action '{kind}': {e}") from e


def build_step(entry: Any, config: ProvisionConfig, values: dict[str, Any]) -> Step:
    if not isinstance(entry, dict):
        raise ConfigError(f"Each step must be a mapping, got {type(entry).__name__}")
    name = entry.get("name")
    if not name:
        raise ConfigError("Step is missing a 'name'")

    when = entry.get("when")
    if when is not None and when not in TOGGLES:
        raise ConfigError(f"Step '{name}': unknown 'when' value '{when}'")

    try:
        return Step(
            name=str(name),
            probe=build_probe(entry.get("probe", {"type": "never"}), values),
            action=build_action(entry.get("action"), values),
            critical=bool(entry.get("critical", False)),
            description=_render(entry.get("description", ""), values),
            notice=_render(entry.get("notice", ""), values),
            disabled_by=config.is_disabled(when),
        )
    except ConfigError as e:
        raise ConfigError(f"Step '{name}': {e}") from e


def load_steps(config: ProvisionConfig, path: Path | None = None) -> list[Step]:
    """Load the ordered step list.

    Args:
        config: Options; supply placeholder values and ``when`` toggles.
        path: Step file. Defaults to ``config.steps_file``, then the bundled file.

    Raises:
        ConfigError: Malformed file, unknown types, or duplicate names.
    """
    if path is None:
        path = Path(config.steps_file).expanduser() if config.steps_file else bundled_steps_path()

    data = read_yaml_mapping(path)
    entries = data.get("steps")
    if not isinstance(entries, list):
        raise ConfigError(f"{path}: expected a 'steps' list")

    values = config.template_values()
    steps: list[Step] = []
    seen: set[str] = set()
    for entry in entries:
        step = build_step(entry, config, values)
        if step.name in seen:
            raise ConfigError(f"Duplicate step name: {step.name}")
        seen.add(step.name)
        steps.append(step)

    logger.info("Loaded %d steps from %s", len(steps), path)
    return steps
