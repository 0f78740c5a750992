"""Environment resolution: validate inputs, load the parameter set, build the StackContext."""

import logging
import re
from pathlib import Path

import yaml

from stackdock.config.types import ENVIRONMENT_ALIASES, ENVIRONMENTS, Environment, ProjectConfig, StackContext
from stackdock.errors import InvalidInputError, ParameterFileError

logger = logging.getLogger(__name__)

PARAMETER_SUFFIXES = (".json", ".yaml", ".yml")

_REGION_RE = re.compile(r"^[a-z]{2}(-gov|-iso[a-z]?)?-[a-z]+-\d{1,2}$")
_STACK_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]{0,127}$")


def normalize_environment(name) -> str:
    """Return the canonical environment name or raise InvalidInputError."""
    if not name:
        raise InvalidInputError("Environment is required. Must be one of: " + ", ".join(ENVIRONMENTS))
    canonical = ENVIRONMENT_ALIASES.get(name, name)
    if canonical not in ENVIRONMENTS:
        raise InvalidInputError(
            f"Invalid environment: {name}. Must be one of: {', '.join(ENVIRONMENTS)}",
            name,
        )
    return canonical


def check_region_format(region) -> str:
    if not region or not _REGION_RE.match(region):
        raise InvalidInputError(f"Invalid region: {region!r}", region or None)
    return region


def default_stack_name(project: ProjectConfig, environment: str) -> str:
    return f"{project.project}-{environment}"


def check_stack_name(stack_name) -> str:
    if not _STACK_NAME_RE.match(stack_name or ""):
        raise InvalidInputError(
            f"Invalid stack name: {stack_name!r}. Must start with a letter and contain only letters, digits and hyphens (max 128).",
            stack_name or None,
        )
    return stack_name


def find_parameter_file(project: ProjectConfig, environment: str) -> Path:
    """Locate parameters/<env>.{json,yaml,yml}, also trying alias names (staging -> stg)."""
    names = [environment] + [alias for alias, canonical in ENVIRONMENT_ALIASES.items() if canonical == environment]
    for name in names:
        for suffix in PARAMETER_SUFFIXES:
            path = project.parameters_path / f"{name}{suffix}"
            if path.is_file():
                return path
    return project.parameters_path / f"{environment}.json"


def _stringify(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    return str(value)


def load_parameter_set(path, secret_keys=(), required_keys=()) -> dict[str, str]:
    """Load the Parameters mapping from a parameter file, preserving order.

    Raises ParameterFileError if the file is absent, not well-formed, has no
    ``Parameters`` mapping, lacks a required key, or contains a secret key.
    """
    path = Path(path)
    if not path.is_file():
        raise ParameterFileError(f"Parameter file not found: {path}", str(path))

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ParameterFileError(f"Parameter file is not well-formed: {e}", str(path)) from e

    if not isinstance(data, dict):
        raise ParameterFileError("Parameter file must contain a mapping", str(path))
    params = data.get("Parameters")
    if not isinstance(params, dict):
        raise ParameterFileError("Parameter file has no 'Parameters' object", str(path))

    leaked = [k for k in secret_keys if k in params]
    if leaked:
        raise ParameterFileError(
            f"Secret parameters must not be stored on disk: {', '.join(leaked)}. Remove them from the file.",
            str(path),
        )

    missing = [k for k in required_keys if params.get(k) in (None, "")]
    if missing:
        raise ParameterFileError(f"Missing required parameters: {', '.join(missing)}", str(path))

    return {str(k): _stringify(v) for k, v in params.items() if v is not None}


async def resolve_environment(project: ProjectConfig, environment, region, stack_name=None, control_plane=None) -> StackContext:
    """Validate the invocation inputs and build the immutable StackContext.

    The environment name is checked before anything touches the network. The
    region is then checked against the control plane's region list when a
    client is given.
    """
    env_name = normalize_environment(environment)
    check_region_format(region)
    stack_name = check_stack_name(stack_name or default_stack_name(project, env_name))

    if control_plane is not None:
        regions = await control_plane.known_regions()
        if region not in regions:
            raise InvalidInputError(f"Invalid region: {region} is not a region known to the control plane", region)

    parameter_file = find_parameter_file(project, env_name)
    parameters = load_parameter_set(
        parameter_file,
        secret_keys=project.secret_parameters,
        required_keys=(project.templates_bucket_key, project.code_bucket_key),
    )
    logger.debug(f"Loaded {len(parameters)} parameters from {parameter_file}")

    return StackContext(
        project=project,
        environment=Environment(name=env_name, region=region, parameter_file=parameter_file),
        stack_name=stack_name,
        parameters=parameters,
    )
