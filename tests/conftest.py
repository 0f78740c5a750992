"""Shared pytest fixtures: sample project, in-memory control plane and artifact store."""

import asyncio
import os
import shutil
import subprocess
import sys

import pytest

import stackdock.redact as redact_module
from stackdock.config.project import load_project_config
from stackdock.config.resolver import resolve_environment
from stackdock.deploy.secrets import EnvSecretProvider
from stackdock.provisioning.base import ArtifactStore, ControlPlane
from stackdock.provisioning.types import (
    CREATE,
    NOOP,
    UPDATE,
    StackDescription,
    StackOutput,
    StackState,
    SubmitResult,
    state_from_status,
)
from stackdock.validate.types import ValidationResult

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))
SAMPLE_PROJECT = os.path.join(PROJECT_ROOT, "sample-project")

SECRET_VALUE = "s3cr3t-Passw0rd-XYZ"


class FakeControlPlane(ControlPlane):
    """In-memory control plane. Each submitted operation walks a scripted status list."""

    def __init__(self, regions=("us-east-1", "us-west-2", "eu-west-1"), store=None):
        self.regions = set(regions)
        self.store = store
        self.calls = []
        self.stacks = {}  # name -> raw status
        self.ids = {}  # stack id -> name
        self.pending = {}  # name -> remaining statuses to report
        self.outputs = [
            StackOutput("ApiEndpoint", "https://abc123.execute-api.us-east-1.amazonaws.com", "Public API endpoint"),
            StackOutput("DatabaseEndpoint", "db.abc123.us-east-1.rds.amazonaws.com"),
        ]
        self.create_statuses = ["CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "CREATE_COMPLETE"]
        self.update_statuses = ["UPDATE_IN_PROGRESS", "UPDATE_COMPLETE"]
        self.delete_statuses = ["DELETE_IN_PROGRESS", "DELETE_COMPLETE"]
        self.durable = []
        self.failure = None
        self.validation_errors = {}  # logical_name -> message
        self.requests = []
        self.deleted = []
        self._last_applied = None
        self._uploads_at_last_submit = 0

    def add_stack(self, name, status):
        stack_id = f"arn:aws:cloudformation:us-east-1:000000000000:stack/{name}/0001"
        self.stacks[name] = status
        self.ids[stack_id] = name
        return stack_id

    def _name(self, stack):
        return self.ids.get(stack, stack)

    def _id(self, name):
        for stack_id, n in self.ids.items():
            if n == name:
                return stack_id
        return ""

    @property
    def network_calls(self):
        return len(self.calls)

    async def known_regions(self):
        self.calls.append("known_regions")
        return set(self.regions)

    async def validate_artifact(self, artifact):
        self.calls.append(("validate_artifact", artifact.logical_name))
        result = ValidationResult(artifact=artifact.logical_name)
        if artifact.logical_name in self.validation_errors:
            result.add_error(self.validation_errors[artifact.logical_name])
        return result

    async def describe_stack(self, stack):
        self.calls.append(("describe_stack", stack))
        name = self._name(stack)
        if self.pending.get(name):
            self.stacks[name] = self.pending[name].pop(0)
        status = self.stacks.get(name)
        if status is None or status == "DELETE_COMPLETE":
            return StackDescription(stack_name=name, state=StackState.ABSENT if status is None else StackState.DELETED, status=status or "")
        outputs = list(self.outputs) if state_from_status(status) == StackState.COMPLETE else []
        return StackDescription(
            stack_name=name,
            stack_id=self._id(name),
            state=state_from_status(status),
            status=status,
            outputs=outputs,
        )

    async def create_or_update_stack(self, request):
        self.calls.append(("create_or_update_stack", request.stack_name))
        self.requests.append(request)
        uploads = len(self.store.uploads) if self.store is not None else 0
        name = request.stack_name
        status = self.stacks.get(name)

        if status is None or status == "DELETE_COMPLETE":
            stack_id = self.add_stack(name, "CREATE_IN_PROGRESS")
            self.pending[name] = list(self.create_statuses)
            operation = CREATE
        elif self._last_applied == request and uploads == self._uploads_at_last_submit:
            return SubmitResult(stack_id=self._id(name), operation=NOOP)
        else:
            stack_id = self._id(name)
            self.stacks[name] = "UPDATE_IN_PROGRESS"
            self.pending[name] = list(self.update_statuses)
            operation = UPDATE

        self._last_applied = request
        self._uploads_at_last_submit = uploads
        return SubmitResult(stack_id=stack_id, operation=operation)

    async def delete_stack(self, stack):
        self.calls.append(("delete_stack", stack))
        name = self._name(stack)
        self.deleted.append(name)
        self.stacks[name] = "DELETE_IN_PROGRESS"
        self.pending[name] = list(self.delete_statuses)

    async def list_durable_resources(self, stack):
        self.calls.append(("list_durable_resources", stack))
        return list(self.durable)

    async def failure_reason(self, stack):
        self.calls.append(("failure_reason", stack))
        return self.failure


class InMemoryArtifactStore(ArtifactStore):
    """Buckets as dicts of key -> (content_hash, bytes)."""

    def __init__(self):
        self.buckets = {}
        self.created = []
        self.uploads = []
        self.deletes = []
        self.calls = []

    async def exists(self, bucket):
        self.calls.append(("exists", bucket))
        return bucket in self.buckets

    async def create(self, bucket, region):
        self.calls.append(("create", bucket))
        self.created.append(bucket)
        self.buckets[bucket] = {}

    async def list_hashes(self, bucket, prefix=""):
        self.calls.append(("list_hashes", bucket, prefix))
        return {k: h for k, (h, _) in self.buckets.get(bucket, {}).items() if k.startswith(prefix)}

    async def upload(self, bucket, key, path, content_hash):
        self.calls.append(("upload", bucket, key))
        with open(path, "rb") as f:
            self.buckets[bucket][key] = (content_hash, f.read())
        self.uploads.append(f"{bucket}/{key}")

    async def delete(self, bucket, keys):
        self.calls.append(("delete", bucket, tuple(keys)))
        for key in keys:
            self.buckets[bucket].pop(key, None)
            self.deletes.append(f"{bucket}/{key}")


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the repository root."""
    return PROJECT_ROOT


@pytest.fixture
def sample_project(tmp_path):
    """A writable copy of sample-project/."""
    dest = tmp_path / "project"
    shutil.copytree(SAMPLE_PROJECT, dest)
    return dest


@pytest.fixture
def project_config(sample_project):
    return load_project_config(sample_project)


@pytest.fixture
def dev_context(project_config):
    """Resolved StackContext for dev in us-east-1, cfn-lint off."""
    project_config.lint.cfn_lint = False
    return asyncio.run(resolve_environment(project_config, "dev", "us-east-1"))


@pytest.fixture
def secret_provider():
    return EnvSecretProvider(environ={"STACKDOCK_SECRET_DATABASE_PASSWORD": SECRET_VALUE})


@pytest.fixture
def store():
    return InMemoryArtifactStore()


@pytest.fixture
def control_plane(store):
    return FakeControlPlane(store=store)


@pytest.fixture(autouse=True)
def _reset_redaction():
    """Redaction state is module-global; isolate each test."""
    redact_module.clear_registered_secrets()
    yield
    redact_module.clear_registered_secrets()


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the stackdock CLI as a subprocess."""

    def _run(*args, env=None):
        full_env = dict(os.environ)
        full_env.update(env or {})
        result = subprocess.run(
            [sys.executable, "-m", "stackdock.stackdock", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=full_env,
            stdin=subprocess.DEVNULL,
        )
        return result.returncode, result.stdout, result.stderr

    return _run
