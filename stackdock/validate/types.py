"""Validation result types."""

from dataclasses import dataclass, field

ERROR_PREFIX = "error: "
WARNING_PREFIX = "warning: "


@dataclass
class ValidationResult:
    """Diagnostics for one artifact. passed is False as soon as any error is recorded."""

    artifact: str
    diagnostics: list[str] = field(default_factory=list)
    error_count: int = 0
    warning_count: int = 0

    @property
    def passed(self) -> bool:
        return self.error_count == 0

    def add_error(self, message: str):
        self.diagnostics.append(ERROR_PREFIX + message)
        self.error_count += 1

    def add_warning(self, message: str):
        self.diagnostics.append(WARNING_PREFIX + message)
        self.warning_count += 1

    def merge(self, other: "ValidationResult"):
        """Append another result's diagnostics for the same artifact."""
        self.diagnostics.extend(other.diagnostics)
        self.error_count += other.error_count
        self.warning_count += other.warning_count

    @property
    def errors(self) -> list[str]:
        return [d[len(ERROR_PREFIX):] for d in self.diagnostics if d.startswith(ERROR_PREFIX)]

    @property
    def warnings(self) -> list[str]:
        return [d[len(WARNING_PREFIX):] for d in self.diagnostics if d.startswith(WARNING_PREFIX)]


@dataclass
class ValidationReport:
    """Aggregate of every ValidationResult in one run, in check order."""

    results: list[ValidationResult] = field(default_factory=list)

    def add(self, result: ValidationResult) -> ValidationResult:
        self.results.append(result)
        return result

    def get(self, artifact: str) -> ValidationResult | None:
        for result in self.results:
            if result.artifact == artifact:
                return result
        return None

    @property
    def error_count(self) -> int:
        return sum(r.error_count for r in self.results)

    @property
    def warning_count(self) -> int:
        return sum(r.warning_count for r in self.results)

    @property
    def passed(self) -> bool:
        return self.error_count == 0

    @property
    def failed_artifacts(self) -> list[str]:
        return [r.artifact for r in self.results if not r.passed]


@dataclass
class ComponentNode:
    """One nested stack of the composition and the components it depends on."""

    name: str
    template: str | None = None
    depends_on: set[str] = field(default_factory=set)
