"""Template validation: structure, policy lint, component graph, parameter files."""

from stackdock.validate.graph import build_component_graph, find_cycle, topological_order
from stackdock.validate.template import check_structure, load_template
from stackdock.validate.types import ComponentNode, ValidationReport, ValidationResult
from stackdock.validate.validator import (
    check_parameter_files,
    log_report,
    validate_artifact,
    validate_artifacts,
    validate_project,
)

__all__ = [
    "ComponentNode",
    "ValidationReport",
    "ValidationResult",
    "build_component_graph",
    "find_cycle",
    "topological_order",
    "check_structure",
    "load_template",
    "check_parameter_files",
    "log_report",
    "validate_artifact",
    "validate_artifacts",
    "validate_project",
]
