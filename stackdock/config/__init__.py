"""Project config and environment resolution."""

from stackdock.config.project import deep_merge, load_project_config
from stackdock.config.resolver import (
    default_stack_name,
    find_parameter_file,
    load_parameter_set,
    normalize_environment,
    resolve_environment,
)
from stackdock.config.types import ENVIRONMENTS, Environment, ProjectConfig, StackContext

__all__ = [
    "ENVIRONMENTS",
    "Environment",
    "ProjectConfig",
    "StackContext",
    "deep_merge",
    "load_project_config",
    "default_stack_name",
    "find_parameter_file",
    "load_parameter_set",
    "normalize_environment",
    "resolve_environment",
]
