"""Validation runs: per-artifact checks, parameter files, aggregated report."""

import logging

from stackdock.artifacts import COMPOSITION, collect_templates
from stackdock.config.resolver import find_parameter_file, load_parameter_set
from stackdock.config.types import ENVIRONMENT_ALIASES, ENVIRONMENTS, ProjectConfig
from stackdock.errors import ParameterFileError
from stackdock.validate.graph import check_dependencies
from stackdock.validate.lint import (
    cfn_lint_enabled,
    check_hardcoded_values,
    check_naming,
    check_references,
    check_size,
    run_cfn_lint,
)
from stackdock.validate.template import check_structure
from stackdock.validate.types import ERROR_PREFIX, ValidationReport, ValidationResult

logger = logging.getLogger(__name__)


async def validate_artifact(artifact, control_plane=None, use_cfn_lint=False) -> tuple[ValidationResult, dict | None]:
    """Structural, policy and (optionally) control-plane checks for one template."""
    try:
        text = artifact.read_text()
    except UnicodeDecodeError as e:
        result = ValidationResult(artifact=artifact.logical_name)
        result.add_error(f"not well-formed: not valid UTF-8 ({e.reason} at byte {e.start})")
        return result, None
    result, template = check_structure(artifact.logical_name, text)

    if template is not None:
        check_references(template, result)
        check_naming(template, result)
    check_hardcoded_values(text, result)
    check_size(text, result)

    if control_plane is not None and template is not None:
        result.merge(await control_plane.validate_artifact(artifact))

    if use_cfn_lint:
        result.merge(await run_cfn_lint(artifact.source_path, artifact.logical_name))

    return result, template


async def _validate_templates(artifacts, control_plane, use_cfn_lint):
    report = ValidationReport()
    composition = None
    composition_result = None
    component_names = []

    for artifact in artifacts:
        if not artifact.is_template:
            continue
        result, template = await validate_artifact(artifact, control_plane, use_cfn_lint)
        report.add(result)
        if artifact.kind == COMPOSITION:
            composition, composition_result = template, result
        else:
            component_names.append(artifact.logical_name)

    if composition is not None:
        nodes = check_dependencies(composition, component_names, composition_result)
        logger.debug(f"Components: {', '.join(sorted(nodes)) or 'none'}")

    for result in report.results:
        log_result(result)
    return report, composition


async def validate_artifacts(artifacts, control_plane=None, use_cfn_lint=False) -> ValidationReport:
    """Validate every template artifact and the composition's component references.

    All diagnostics are collected even after the first failure. Code
    payloads are opaque and skipped.
    """
    report, _ = await _validate_templates(artifacts, control_plane, use_cfn_lint)
    return report


def check_parameter_files(project: ProjectConfig, composition=None) -> list[ValidationResult]:
    """Check each environment's parameter file against the composition's declared parameters."""
    declared = (composition or {}).get("Parameters") or {}
    secret_keys = set(project.secret_parameters)
    results = []

    for env in ENVIRONMENTS:
        path = find_parameter_file(project, env)
        result = ValidationResult(artifact=f"{project.parameters_dir}/{path.name}")
        results.append(result)

        if not path.is_file():
            aliases = [a for a, c in ENVIRONMENT_ALIASES.items() if c == env]
            tried = f" (also tried {', '.join(aliases)})" if aliases else ""
            result.add_warning(f"parameter file for '{env}' not found{tried}")
            continue

        try:
            params = load_parameter_set(
                path,
                secret_keys=project.secret_parameters,
                required_keys=(project.templates_bucket_key, project.code_bucket_key),
            )
        except ParameterFileError as e:
            result.add_error(e.message)
            continue

        if not declared:
            continue
        for key in params:
            if key not in declared:
                result.add_error(f"parameter '{key}' is not declared by {project.composition}")
        for key, declaration in declared.items():
            has_default = isinstance(declaration, dict) and "Default" in declaration
            if key not in params and key not in secret_keys and not has_default:
                result.add_warning(f"parameter '{key}' has no default and is not set")
        for key in sorted(secret_keys - set(declared)):
            result.add_warning(f"secret parameter '{key}' is not declared by {project.composition}")

    return results


async def validate_project(project: ProjectConfig, control_plane=None, include_parameter_files=True) -> ValidationReport:
    """Full validate run: every template, dependency references, parameter files."""
    artifacts = collect_templates(project.project_dir, project.composition, project.templates_dir)
    use_cfn_lint = cfn_lint_enabled(project.lint.cfn_lint)

    report, composition = await _validate_templates(artifacts, control_plane, use_cfn_lint)

    if not project.composition_path.is_file():
        missing = report.add(ValidationResult(artifact=project.composition))
        missing.add_error("composition template not found")
        log_result(missing)
    if not project.templates_path.is_dir():
        missing = report.add(ValidationResult(artifact=project.templates_dir))
        missing.add_warning("templates directory not found")
        log_result(missing)

    if include_parameter_files:
        logger.info("")
        logger.info("Checking parameter files...")
        for result in check_parameter_files(project, composition):
            report.add(result)
            log_result(result)

    return report


def log_result(result: ValidationResult):
    logger.info(f"Validating: {result.artifact}")
    for diagnostic in result.diagnostics:
        if diagnostic.startswith(ERROR_PREFIX):
            logger.error(f"  ✗ {diagnostic}")
        else:
            logger.warning(f"  ⚠ {diagnostic}")
    if result.passed:
        logger.info("  ✓ passed")


def log_report(report: ValidationReport):
    """Summary block printed at the end of a validate run."""
    logger.info("")
    logger.info("========== Validation Report ==========")
    logger.info(f"Artifacts checked: {len(report.results)}")
    if report.passed:
        logger.info("✓ All validations passed!")
    else:
        logger.info(f"✗ Total errors: {report.error_count}")
        logger.info(f"  Failed: {', '.join(report.failed_artifacts)}")
    if report.warning_count:
        logger.info(f"⚠ Total warnings: {report.warning_count}")
    logger.info("=======================================")
