"""Template parsing and structural checks.

Templates are YAML or JSON. The YAML loader understands CloudFormation
short-form intrinsic tags (``!Ref``, ``!GetAtt``, ``!Sub``, ...) and expands
them to their long form so later checks only see one shape.
"""

import json
import re

import yaml

from stackdock.validate.types import ValidationResult

FORMAT_VERSION = "2010-09-09"

TOP_LEVEL_SECTIONS = {
    "AWSTemplateFormatVersion",
    "Description",
    "Metadata",
    "Parameters",
    "Rules",
    "Mappings",
    "Conditions",
    "Transform",
    "Resources",
    "Outputs",
}

_LOGICAL_ID_RE = re.compile(r"^[A-Za-z0-9]+$")
_RESOURCE_TYPE_RE = re.compile(r"^([A-Za-z0-9]+::[A-Za-z0-9]+::[A-Za-z0-9]+(::[A-Za-z0-9]+)?|Custom::[A-Za-z0-9_@-]+)$")


class TemplateLoader(yaml.SafeLoader):
    """SafeLoader that accepts CloudFormation intrinsic function tags."""


def _construct_intrinsic(loader, tag_suffix, node):
    if tag_suffix == "Ref":
        name = "Ref"
    elif tag_suffix == "Condition":
        name = "Condition"
    else:
        name = f"Fn::{tag_suffix}"

    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
        if tag_suffix == "GetAtt":
            value = value.split(".", 1)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)
    return {name: value}


TemplateLoader.add_multi_constructor("!", _construct_intrinsic)


def load_template(text):
    """Parse template text into a dict-like document.

    Raises yaml.YAMLError or json.JSONDecodeError on malformed input.
    """
    if text.lstrip().startswith("{"):
        return json.loads(text)
    return yaml.load(text, Loader=TemplateLoader)


def check_structure(name, text) -> tuple[ValidationResult, dict | None]:
    """Structural well-formedness of one template.

    Returns the result and the parsed template (None if it could not be parsed
    into a mapping).
    """
    result = ValidationResult(artifact=name)

    try:
        template = load_template(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        result.add_error(f"not well-formed: {e}")
        return result, None

    if not isinstance(template, dict):
        result.add_error("template must be a mapping at the top level")
        return result, None

    for section in template:
        if section not in TOP_LEVEL_SECTIONS:
            result.add_error(f"unknown top-level section '{section}'")

    version = template.get("AWSTemplateFormatVersion")
    if version is not None and str(version) != FORMAT_VERSION:
        result.add_error(f"AWSTemplateFormatVersion must be '{FORMAT_VERSION}', got '{version}'")

    for section in ("Parameters", "Mappings", "Conditions", "Outputs"):
        value = template.get(section)
        if value is not None and not isinstance(value, dict):
            result.add_error(f"'{section}' must be a mapping")

    resources = template.get("Resources")
    if not isinstance(resources, dict) or not resources:
        result.add_error("'Resources' must be a non-empty mapping")
        resources = {}

    for logical_id, resource in resources.items():
        if not _LOGICAL_ID_RE.match(str(logical_id)):
            result.add_error(f"resource logical ID '{logical_id}' must be alphanumeric")
        if not isinstance(resource, dict):
            result.add_error(f"resource '{logical_id}' must be a mapping")
            continue
        rtype = resource.get("Type")
        if not isinstance(rtype, str) or not _RESOURCE_TYPE_RE.match(rtype):
            result.add_error(f"resource '{logical_id}' has invalid or missing Type: {rtype!r}")
        props = resource.get("Properties")
        if props is not None and not isinstance(props, dict):
            result.add_error(f"resource '{logical_id}' Properties must be a mapping")

    outputs = template.get("Outputs")
    if isinstance(outputs, dict):
        for logical_id, output in outputs.items():
            if not _LOGICAL_ID_RE.match(str(logical_id)):
                result.add_error(f"output logical ID '{logical_id}' must be alphanumeric")
            if not isinstance(output, dict) or "Value" not in output:
                result.add_error(f"output '{logical_id}' has no Value")

    params = template.get("Parameters")
    if isinstance(params, dict):
        for logical_id, param in params.items():
            if not _LOGICAL_ID_RE.match(str(logical_id)):
                result.add_error(f"parameter logical ID '{logical_id}' must be alphanumeric")
            if not isinstance(param, dict) or "Type" not in param:
                result.add_error(f"parameter '{logical_id}' has no Type")

    return result, template
