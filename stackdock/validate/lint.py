"""Policy and lint rules for templates.

Unresolved references are errors. Naming conventions, hardcoded literals
(account IDs, regions, IP addresses) and oversized templates are warnings.
An installed cfn-lint is run as an additional external linter.
"""

import logging
import re
import shutil

from stackdock.provisioning.shell import run_shell_cmd
from stackdock.validate.types import ValidationResult

logger = logging.getLogger(__name__)

INLINE_TEMPLATE_LIMIT = 51200

_PASCAL_CASE_RE = re.compile(r"^[A-Z][A-Za-z0-9]*$")
_SUB_VAR_RE = re.compile(r"\$\{([^}!][^}]*)\}")

_ACCOUNT_ID_RE = re.compile(r"(?<![\d.])\d{12}(?![\d.])")
_REGION_RE = re.compile(
    r"\b(?:us|eu|ap|sa|ca|me|af|il|mx)(?:-gov)?-(?:east|west|north|south|central|northeast|southeast|northwest|southwest)-\d\b"
)
_IPV4_RE = re.compile(r"(?<![\d.])(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})(?![\d.])")


def _is_pseudo(name) -> bool:
    return isinstance(name, str) and name.startswith("AWS::")


def _walk(node, visit):
    """Depth-first walk calling visit(dict) on every mapping."""
    if isinstance(node, dict):
        visit(node)
        for value in node.values():
            _walk(value, visit)
    elif isinstance(node, list):
        for item in node:
            _walk(item, visit)


def collect_references(node) -> list[tuple[str, str]]:
    """Return (function, target) pairs for every Ref, GetAtt and Sub variable under node."""
    refs = []

    def visit(d):
        if "Ref" in d and isinstance(d["Ref"], str):
            refs.append(("Ref", d["Ref"]))
        if "Fn::GetAtt" in d:
            target = d["Fn::GetAtt"]
            if isinstance(target, str):
                target = target.split(".", 1)
            if isinstance(target, list) and target and isinstance(target[0], str):
                refs.append(("Fn::GetAtt", target[0]))
        if "Fn::Sub" in d:
            sub = d["Fn::Sub"]
            local_vars = {}
            if isinstance(sub, list) and sub:
                local_vars = sub[1] if len(sub) > 1 and isinstance(sub[1], dict) else {}
                sub = sub[0]
            if isinstance(sub, str):
                for var in _SUB_VAR_RE.findall(sub):
                    name = var.split(".", 1)[0].strip()
                    if name not in local_vars:
                        refs.append(("Fn::Sub", name))

    _walk(node, visit)
    return refs


def check_references(template, result: ValidationResult):
    """Every Ref/GetAtt/Sub target, DependsOn and Condition name must resolve inside the template."""
    params = set(template.get("Parameters") or {})
    resources = template.get("Resources") or {}
    conditions = set(template.get("Conditions") or {})
    known = params | set(resources)

    sections = [("Resources", resources), ("Outputs", template.get("Outputs") or {}), ("Conditions", template.get("Conditions") or {})]
    for section, body in sections:
        if not isinstance(body, dict):
            continue
        for logical_id, node in body.items():
            for fn, target in collect_references(node):
                if _is_pseudo(target):
                    continue
                if fn == "Fn::GetAtt" and target not in resources:
                    result.add_error(f"{section}.{logical_id}: Fn::GetAtt references unknown resource '{target}'")
                elif fn != "Fn::GetAtt" and target not in known:
                    result.add_error(f"{section}.{logical_id}: {fn} references unknown name '{target}'")

    for logical_id, resource in resources.items():
        if not isinstance(resource, dict):
            continue
        depends = resource.get("DependsOn") or []
        if isinstance(depends, str):
            depends = [depends]
        for dep in depends:
            if dep not in resources:
                result.add_error(f"Resources.{logical_id}: DependsOn references unknown resource '{dep}'")
        condition = resource.get("Condition")
        if isinstance(condition, str) and condition not in conditions:
            result.add_error(f"Resources.{logical_id}: Condition '{condition}' is not defined")


def check_naming(template, result: ValidationResult):
    """Logical IDs should be PascalCase."""
    for section in ("Parameters", "Resources", "Outputs"):
        body = template.get(section)
        if not isinstance(body, dict):
            continue
        for logical_id in body:
            if not _PASCAL_CASE_RE.match(str(logical_id)):
                result.add_warning(f"{section}.{logical_id}: logical ID is not PascalCase")


def _valid_ip(match) -> bool:
    octets = [int(g) for g in match.groups()]
    return all(o <= 255 for o in octets) and octets != [0, 0, 0, 0]


def check_hardcoded_values(text, result: ValidationResult):
    """Warn on literal account IDs, region names and IPv4 addresses, with line numbers."""
    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if stripped.startswith("#"):
            continue
        if _ACCOUNT_ID_RE.search(line):
            result.add_warning(f"line {lineno}: possible hardcoded account ID")
        region = _REGION_RE.search(line)
        if region:
            result.add_warning(f"line {lineno}: possible hardcoded region '{region.group(0)}'")
        for ip in _IPV4_RE.finditer(line):
            if _valid_ip(ip):
                result.add_warning(f"line {lineno}: possible hardcoded IP address '{ip.group(0)}'")
                break


def check_size(text, result: ValidationResult):
    size = len(text.encode())
    if size > INLINE_TEMPLATE_LIMIT:
        result.add_warning(f"template size {size // 1024}KB exceeds the {INLINE_TEMPLATE_LIMIT // 1024}KB inline limit")


def cfn_lint_enabled(setting) -> bool:
    """None means auto: run only when cfn-lint is on PATH."""
    if setting is None:
        return shutil.which("cfn-lint") is not None
    return bool(setting)


async def run_cfn_lint(path, name) -> ValidationResult:
    """Run cfn-lint in parseable format and convert findings to diagnostics.

    Rule IDs starting with E are errors; W and I findings are warnings.
    """
    result = ValidationResult(artifact=name)
    rc, stdout, stderr = await run_shell_cmd(["cfn-lint", "--format", "parseable", "--", str(path)], timeout=300)
    if rc == 127:
        result.add_warning("cfn-lint is enabled but not installed")
        return result

    findings = 0
    for line in stdout.splitlines():
        # file:line:col:endline:endcol:RuleId:message
        parts = line.split(":", 6)
        if len(parts) < 7:
            continue
        lineno, rule, message = parts[1], parts[5], parts[6].strip()
        findings += 1
        text = f"cfn-lint {rule} line {lineno}: {message}"
        if rule.startswith("E"):
            result.add_error(text)
        else:
            result.add_warning(text)

    if rc != 0 and findings == 0:
        result.add_warning(f"cfn-lint exited with {rc}: {stderr.strip() or 'no output'}")
    return result
