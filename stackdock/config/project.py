"""Project config loading: stackdock.yaml deep-merged onto defaults."""

import logging
from pathlib import Path

import yaml

from stackdock.config.types import ProjectConfig
from stackdock.errors import InvalidInputError

logger = logging.getLogger(__name__)

PROJECT_FILE = "stackdock.yaml"

DEFAULTS = {
    "project": "contact-center",
    "project_display_name": "Contact Center",
    "composition": "main.yaml",
    "templates_dir": "templates",
    "code_dir": "lambda-code",
    "parameters_dir": "parameters",
    "secret_parameters": ["DatabasePassword"],
    "templates_bucket_key": "TemplatesBucket",
    "code_bucket_key": "LambdaCodeBucket",
    "poll_interval": 10,
    "tags": {},
    "lint": {"cfn_lint": None},
}


def deep_merge(base, override):
    """Recursive dict merge. Override wins for scalars."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_project_config(project_dir=".") -> ProjectConfig:
    """Load stackdock.yaml from project_dir if present, merged onto DEFAULTS."""
    project_dir = Path(project_dir)
    if not project_dir.is_dir():
        raise InvalidInputError(f"Project directory not found: {project_dir}", str(project_dir))

    config = DEFAULTS
    config_path = project_dir / PROJECT_FILE
    if config_path.is_file():
        try:
            with open(config_path, encoding="utf-8") as f:
                overrides = yaml.safe_load(f) or {}
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            raise InvalidInputError(f"Could not parse {PROJECT_FILE}: {e}", str(config_path)) from e
        if not isinstance(overrides, dict):
            raise InvalidInputError(f"{PROJECT_FILE} must contain a mapping", str(config_path))
        unknown = sorted(set(overrides) - set(DEFAULTS))
        if unknown:
            logger.warning(f"Warning: ignoring unknown keys in {PROJECT_FILE}: {', '.join(unknown)}")
            overrides = {k: v for k, v in overrides.items() if k in DEFAULTS}
        config = deep_merge(DEFAULTS, overrides)
    else:
        logger.debug(f"No {PROJECT_FILE} in {project_dir}, using defaults")

    try:
        return ProjectConfig.from_dict(config, project_dir=project_dir)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Invalid value in {PROJECT_FILE}: {e}", str(config_path)) from e
