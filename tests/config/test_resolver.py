"""Tests for stackdock.config.resolver: environment, region and parameter-set resolution."""

import asyncio
import json

import pytest

from stackdock.config.resolver import (
    check_region_format,
    check_stack_name,
    find_parameter_file,
    load_parameter_set,
    normalize_environment,
    resolve_environment,
)
from stackdock.errors import InvalidInputError, ParameterFileError

from conftest import FakeControlPlane


def _write_params(path, params):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"Parameters": params}))


# ── normalize_environment / region / stack name ───────────────────


@pytest.mark.parametrize("name,expected", [("dev", "dev"), ("staging", "staging"), ("stg", "staging"), ("prod", "prod")])
def test_normalize_environment(name, expected):
    assert normalize_environment(name) == expected


@pytest.mark.parametrize("name", ["qa", "", None, "Prod"])
def test_normalize_environment_rejects(name):
    with pytest.raises(InvalidInputError):
        normalize_environment(name)


@pytest.mark.parametrize("region", ["us-east-1", "eu-central-1", "ap-southeast-2", "us-gov-west-1"])
def test_region_format_ok(region):
    assert check_region_format(region) == region


@pytest.mark.parametrize("region", ["", "useast1", "us-east", "US-EAST-1"])
def test_region_format_rejects(region):
    with pytest.raises(InvalidInputError):
        check_region_format(region)


def test_stack_name_rules():
    assert check_stack_name("contact-center-dev") == "contact-center-dev"
    with pytest.raises(InvalidInputError):
        check_stack_name("1-starts-with-digit")
    with pytest.raises(InvalidInputError):
        check_stack_name("has_underscore")


# ── parameter files ─────────────────────────────────────────────


def test_find_parameter_file_alias(project_config):
    (project_config.parameters_path / "staging.json").unlink()
    _write_params(project_config.parameters_path / "stg.yaml", {"TemplatesBucket": "t", "LambdaCodeBucket": "c"})
    assert find_parameter_file(project_config, "staging").name == "stg.yaml"


def test_load_parameter_set_stringifies(tmp_path):
    path = tmp_path / "dev.yaml"
    path.write_text("Parameters:\n  Count: 3\n  Enabled: true\n  Zones: [a, b]\n  Empty: null\n")
    assert load_parameter_set(path) == {"Count": "3", "Enabled": "true", "Zones": "a,b"}


def test_load_parameter_set_missing_file(tmp_path):
    with pytest.raises(ParameterFileError, match="not found"):
        load_parameter_set(tmp_path / "dev.json")


def test_load_parameter_set_no_parameters_object(tmp_path):
    path = tmp_path / "dev.json"
    path.write_text(json.dumps({"Environment": "dev"}))
    with pytest.raises(ParameterFileError, match="Parameters"):
        load_parameter_set(path)


def test_load_parameter_set_malformed(tmp_path):
    path = tmp_path / "dev.json"
    path.write_text('{"Parameters": {')
    with pytest.raises(ParameterFileError, match="well-formed"):
        load_parameter_set(path)


def test_load_parameter_set_not_utf8(tmp_path):
    path = tmp_path / "dev.json"
    path.write_bytes(b'{"Parameters": {"TemplatesBucket": "t\xff\xfe", "LambdaCodeBucket": "c"}}')
    with pytest.raises(ParameterFileError, match="well-formed") as exc_info:
        load_parameter_set(path)
    assert exc_info.value.identifier == str(path)


def test_load_parameter_set_rejects_secret(tmp_path):
    path = tmp_path / "dev.json"
    _write_params(path, {"DatabasePassword": "oops"})
    with pytest.raises(ParameterFileError, match="DatabasePassword"):
        load_parameter_set(path, secret_keys=["DatabasePassword"])


def test_load_parameter_set_required_keys(tmp_path):
    path = tmp_path / "dev.json"
    _write_params(path, {"TemplatesBucket": "t"})
    with pytest.raises(ParameterFileError, match="LambdaCodeBucket"):
        load_parameter_set(path, required_keys=("TemplatesBucket", "LambdaCodeBucket"))


# ── resolve_environment ─────────────────────────────────────────


def test_resolve_environment(project_config):
    cp = FakeControlPlane()
    ctx = asyncio.run(resolve_environment(project_config, "dev", "us-east-1", control_plane=cp))
    assert ctx.stack_name == "contact-center-dev"
    assert ctx.environment.name == "dev"
    assert ctx.region == "us-east-1"
    assert ctx.templates_bucket == "contact-center-templates-dev"
    assert ctx.code_bucket == "contact-center-lambda-code-dev"
    assert ctx.tags["Environment"] == "dev"
    assert ctx.tags["ManagedBy"] == "stackdock"
    assert ctx.tags["Project"] == "Contact Center"
    assert ctx.tags["CostCenter"] == "support"


def test_resolve_environment_alias_and_stack_override(project_config):
    ctx = asyncio.run(resolve_environment(project_config, "stg", "us-west-2", stack_name="cc-blue"))
    assert ctx.environment.name == "staging"
    assert ctx.stack_name == "cc-blue"


def test_fixed_tags_cannot_be_overridden(project_config):
    project_config.tags["ManagedBy"] = "someone-else"
    ctx = asyncio.run(resolve_environment(project_config, "dev", "us-east-1"))
    assert ctx.tags["ManagedBy"] == "stackdock"


def test_invalid_environment_before_any_network_call(project_config):
    cp = FakeControlPlane()
    with pytest.raises(InvalidInputError, match="Invalid environment"):
        asyncio.run(resolve_environment(project_config, "qa", "us-east-1", control_plane=cp))
    assert cp.network_calls == 0


def test_unknown_region_rejected(project_config):
    cp = FakeControlPlane(regions=("us-east-1",))
    with pytest.raises(InvalidInputError, match="not a region known"):
        asyncio.run(resolve_environment(project_config, "dev", "eu-west-3", control_plane=cp))


def test_missing_parameters_object(project_config):
    (project_config.parameters_path / "dev.json").write_text(json.dumps({"Environment": "dev"}))
    with pytest.raises(ParameterFileError):
        asyncio.run(resolve_environment(project_config, "dev", "us-east-1"))
