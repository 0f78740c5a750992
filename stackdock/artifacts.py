"""Artifact collection and content hashing."""

import hashlib
from dataclasses import dataclass
from pathlib import Path

COMPOSITION = "composition"
COMPONENT = "component"
CODE = "code"

TEMPLATE_SUFFIXES = (".yaml", ".yml", ".json", ".template")


@dataclass(frozen=True)
class Artifact:
    """A template or code payload, identified by its content hash."""

    logical_name: str
    content_hash: str
    source_path: Path
    destination_ref: str = ""
    kind: str = COMPONENT

    @property
    def is_template(self) -> bool:
        return self.kind in (COMPOSITION, COMPONENT)

    def read_text(self) -> str:
        return self.source_path.read_text(encoding="utf-8")


def hash_file(path) -> str:
    """SHA256 hex digest of a file's bytes."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def make_artifact(path, logical_name, kind, destination_ref="") -> Artifact:
    path = Path(path)
    return Artifact(
        logical_name=logical_name,
        content_hash=hash_file(path),
        source_path=path,
        destination_ref=destination_ref,
        kind=kind,
    )


def collect_templates(project_dir, composition_file, templates_dir, bucket=None) -> list[Artifact]:
    """Return the composition template followed by component templates, sorted by name.

    Component logical names are their file names; destination refs point at
    ``s3://<bucket>/templates/<name>`` when a bucket is known.
    """
    project_dir = Path(project_dir)
    artifacts = []

    composition_path = project_dir / composition_file
    if composition_path.is_file():
        dest = f"s3://{bucket}/{composition_path.name}" if bucket else ""
        artifacts.append(make_artifact(composition_path, composition_path.name, COMPOSITION, dest))

    tdir = project_dir / templates_dir
    if tdir.is_dir():
        for path in sorted(tdir.iterdir()):
            if path.is_file() and path.suffix in TEMPLATE_SUFFIXES:
                dest = f"s3://{bucket}/templates/{path.name}" if bucket else ""
                artifacts.append(make_artifact(path, path.name, COMPONENT, dest))

    return artifacts


def collect_code_payloads(code_dir, bucket=None) -> list[Artifact] | None:
    """Return every file under code_dir as a code artifact keyed by relative path.

    Returns None when the directory does not exist.
    """
    code_dir = Path(code_dir)
    if not code_dir.is_dir():
        return None

    artifacts = []
    for path in sorted(code_dir.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(code_dir).as_posix()
        dest = f"s3://{bucket}/{rel}" if bucket else ""
        artifacts.append(make_artifact(path, rel, CODE, dest))
    return artifacts
