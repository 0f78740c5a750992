"""CLI tests: argument handling, exit codes and output, on in-memory fakes."""

import io
import logging

import pytest

import stackdock.commands as commands
import stackdock.commands.deploy as deploy_command
from stackdock.provisioning.types import StackResource
from stackdock.stackdock import main

from conftest import SECRET_VALUE, FakeControlPlane, InMemoryArtifactStore


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """main() installs its own root handler; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fakes(monkeypatch):
    store = InMemoryArtifactStore()
    cp = FakeControlPlane(store=store)
    monkeypatch.setattr(commands, "make_control_plane", lambda region: cp)
    monkeypatch.setattr(commands, "make_artifact_store", lambda region: store)
    return cp, store


@pytest.fixture
def project(sample_project):
    (sample_project / "stackdock.yaml").write_text("lint:\n  cfn_lint: false\n")
    return str(sample_project)


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# ── deploy ──────────────────────────────────────────────────────


def test_deploy_success(project, fakes, monkeypatch, capsys):
    monkeypatch.setenv("STACKDOCK_SECRET_DATABASE_PASSWORD", SECRET_VALUE)
    main(["deploy", "dev", "us-east-1", "--project-dir", project, "--secret-provider", "env", "--poll-interval", "0"])

    out = capsys.readouterr().out
    assert "Stack deployment completed successfully" in out
    assert "| ApiEndpoint" in out
    assert SECRET_VALUE not in out
    cp, store = fakes
    assert cp.requests[0].stack_name == "contact-center-dev"


def test_deploy_verbose_redacts_secrets(project, fakes, monkeypatch, capsys):
    monkeypatch.setenv("STACKDOCK_SECRET_DATABASE_PASSWORD", SECRET_VALUE)

    original = deploy_command.deploy

    async def noisy_deploy(params, **kwargs):
        outcome = await original(params, **kwargs)
        logging.getLogger("botocore.endpoint").warning(f"request params: {SECRET_VALUE}")
        return outcome

    monkeypatch.setattr(deploy_command, "deploy", noisy_deploy)
    main(["-v", "deploy", "dev", "us-east-1", "--project-dir", project, "--secret-provider", "env", "--poll-interval", "0"])

    out = capsys.readouterr().out
    assert "request params: ***" in out
    assert SECRET_VALUE not in out


def test_deploy_invalid_environment(project, monkeypatch, capsys):
    def no_clients(region):
        raise AssertionError("client built for an invalid environment")

    monkeypatch.setattr(commands, "make_control_plane", no_clients)
    monkeypatch.setattr(commands, "make_artifact_store", no_clients)

    assert _exit_code(["deploy", "qa", "us-east-1", "--project-dir", project]) == 1
    assert "Invalid environment: qa" in capsys.readouterr().out


def test_deploy_validation_failure(project, fakes, monkeypatch, capsys, sample_project):
    (sample_project / "templates" / "api.yaml").write_text("Resources: {}\n")
    monkeypatch.setenv("STACKDOCK_SECRET_DATABASE_PASSWORD", SECRET_VALUE)

    assert _exit_code(["deploy", "dev", "us-east-1", "--project-dir", project, "--secret-provider", "env"]) == 1
    out = capsys.readouterr().out
    assert "Validation Report" in out
    assert "affected: api.yaml" in out
    assert fakes[1].calls == []


def test_deploy_concurrent_operation(project, fakes, monkeypatch, capsys):
    monkeypatch.setenv("STACKDOCK_SECRET_DATABASE_PASSWORD", SECRET_VALUE)
    fakes[0].add_stack("contact-center-dev", "UPDATE_IN_PROGRESS")
    assert _exit_code(["deploy", "dev", "us-east-1", "--project-dir", project, "--secret-provider", "env"]) == 1
    assert "another operation is in flight" in capsys.readouterr().out


def test_deploy_interrupt_exits_130(project, fakes, monkeypatch, capsys):
    async def interrupted(params, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(deploy_command, "deploy", interrupted)
    assert _exit_code(["deploy", "dev", "us-east-1", "--project-dir", project]) == 130
    out = capsys.readouterr().out
    assert "describe-stacks --stack-name contact-center-dev --region us-east-1" in out


def test_deploy_dry_run(project, fakes, monkeypatch, capsys):
    monkeypatch.setenv("STACKDOCK_SECRET_DATABASE_PASSWORD", SECRET_VALUE)
    main(["deploy", "dev", "us-east-1", "--project-dir", project, "--secret-provider", "env", "--dry-run"])
    out = capsys.readouterr().out
    assert "[dry-run]" in out
    assert "Dry run complete" in out
    assert fakes[0].requests == []


# ── cleanup ─────────────────────────────────────────────────────


def test_cleanup_with_yes(project, fakes, capsys):
    cp, _ = fakes
    cp.add_stack("contact-center-dev", "CREATE_COMPLETE")
    main(["cleanup", "dev", "us-east-1", "--project-dir", project, "--yes", "--poll-interval", "0"])
    assert cp.deleted == ["contact-center-dev"]
    assert "Stack contact-center-dev deleted." in capsys.readouterr().out


def test_cleanup_absent_stack(project, fakes, capsys):
    main(["cleanup", "prod", "us-east-1", "--project-dir", project, "--yes"])
    assert "does not exist" in capsys.readouterr().out


def test_cleanup_without_terminal_needs_yes(project, fakes, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO())
    fakes[0].add_stack("contact-center-dev", "CREATE_COMPLETE")
    assert _exit_code(["cleanup", "dev", "us-east-1", "--project-dir", project]) == 1
    assert "--yes" in capsys.readouterr().out
    assert fakes[0].deleted == []


def test_cleanup_durable_needs_force(project, fakes, capsys):
    cp, _ = fakes
    cp.add_stack("contact-center-dev", "CREATE_COMPLETE")
    cp.durable = [StackResource("Database", "AWS::RDS::DBInstance", "db-1")]
    assert _exit_code(["cleanup", "dev", "us-east-1", "--project-dir", project, "--yes"]) == 1
    assert "--force-delete-data" in capsys.readouterr().out

    main(["cleanup", "dev", "us-east-1", "--project-dir", project, "--yes", "--force-delete-data", "--poll-interval", "0"])
    assert cp.deleted == ["contact-center-dev"]


def test_cleanup_busy(project, fakes, capsys):
    fakes[0].add_stack("contact-center-dev", "DELETE_IN_PROGRESS")
    assert _exit_code(["cleanup", "dev", "us-east-1", "--project-dir", project, "--yes"]) == 1
    assert fakes[0].deleted == []


# ── validate ────────────────────────────────────────────────────


def test_validate_offline_passes(project, monkeypatch, capsys):
    monkeypatch.setattr(commands, "make_control_plane", lambda region: pytest.fail("offline must not build a client"))
    main(["validate", "--project-dir", project, "--offline"])
    out = capsys.readouterr().out
    assert "All validations passed!" in out
    assert "Validating: main.yaml" in out


def test_validate_uses_control_plane(project, fakes, capsys):
    fakes[0].validation_errors["network.yaml"] = "Template format error"
    assert _exit_code(["validate", "--project-dir", project, "--region", "us-east-1"]) == 1
    out = capsys.readouterr().out
    assert "Failed: network.yaml" in out


# ── subprocess ──────────────────────────────────────────────────


def test_cli_help(run_cli):
    rc, stdout, _ = run_cli("--help")
    assert rc == 0
    for command in ("deploy", "validate", "cleanup"):
        assert command in stdout


def test_cli_invalid_environment(run_cli):
    rc, stdout, _ = run_cli("deploy", "qa", "us-east-1", "--project-dir", "sample-project")
    assert rc == 1
    assert "Invalid environment: qa. Must be one of: dev, staging, prod" in stdout


def test_cli_missing_arguments(run_cli):
    rc, _, stderr = run_cli("cleanup", "dev")
    assert rc == 2
    assert "region" in stderr
