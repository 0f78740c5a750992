"""Project and environment configuration types."""

from dataclasses import dataclass, field
from pathlib import Path

ENVIRONMENTS = ("dev", "staging", "prod")
ENVIRONMENT_ALIASES = {"stg": "staging"}

MANAGED_BY = "stackdock"


@dataclass
class LintConfig:
    """External linter settings. cfn_lint=None means run it when installed."""

    cfn_lint: bool | None = None


@dataclass
class ProjectConfig:
    """Settings from stackdock.yaml merged onto defaults."""

    project_dir: Path = field(default_factory=Path)
    project: str = "contact-center"
    project_display_name: str = "Contact Center"
    composition: str = "main.yaml"
    templates_dir: str = "templates"
    code_dir: str = "lambda-code"
    parameters_dir: str = "parameters"
    secret_parameters: list[str] = field(default_factory=lambda: ["DatabasePassword"])
    templates_bucket_key: str = "TemplatesBucket"
    code_bucket_key: str = "LambdaCodeBucket"
    poll_interval: float = 10.0
    tags: dict[str, str] = field(default_factory=dict)
    lint: LintConfig = field(default_factory=LintConfig)

    @classmethod
    def from_dict(cls, d: dict, project_dir=".") -> "ProjectConfig":
        """Build a ProjectConfig from a merged config dict."""
        lint_dict = d.get("lint") or {}
        return cls(
            project_dir=Path(project_dir),
            project=str(d["project"]),
            project_display_name=str(d.get("project_display_name") or d["project"]),
            composition=d["composition"],
            templates_dir=d["templates_dir"],
            code_dir=d["code_dir"],
            parameters_dir=d["parameters_dir"],
            secret_parameters=list(d.get("secret_parameters") or []),
            templates_bucket_key=d["templates_bucket_key"],
            code_bucket_key=d["code_bucket_key"],
            poll_interval=float(d["poll_interval"]),
            tags={str(k): str(v) for k, v in (d.get("tags") or {}).items()},
            lint=LintConfig(cfn_lint=lint_dict.get("cfn_lint")),
        )

    @property
    def composition_path(self) -> Path:
        return self.project_dir / self.composition

    @property
    def templates_path(self) -> Path:
        return self.project_dir / self.templates_dir

    @property
    def code_path(self) -> Path:
        return self.project_dir / self.code_dir

    @property
    def parameters_path(self) -> Path:
        return self.project_dir / self.parameters_dir


@dataclass(frozen=True)
class Environment:
    """A named target environment. Immutable per invocation."""

    name: str
    region: str
    parameter_file: Path


@dataclass(frozen=True)
class StackContext:
    """Everything resolved once per invocation and passed to each component."""

    project: ProjectConfig
    environment: Environment
    stack_name: str
    parameters: dict[str, str]

    @property
    def region(self) -> str:
        return self.environment.region

    @property
    def templates_bucket(self) -> str:
        return self.parameters[self.project.templates_bucket_key]

    @property
    def code_bucket(self) -> str:
        return self.parameters[self.project.code_bucket_key]

    @property
    def tags(self) -> dict[str, str]:
        """Fixed tags first, then project-configured extras (which cannot override them)."""
        tags = dict(self.project.tags)
        tags.update(
            {
                "Environment": self.environment.name,
                "Project": self.project.project_display_name,
                "ManagedBy": MANAGED_BY,
            }
        )
        return tags
