"""Component dependency graph of the composition template.

Each nested stack (``AWS::CloudFormation::Stack``) in the composition is a
ComponentNode. Edges come from ``DependsOn`` and from Ref/GetAtt/Sub
references to other nested stacks. The control plane orders creation from
these declarations; here we only check that they reference real component
templates and form a DAG.
"""

import re

from stackdock.validate.lint import collect_references
from stackdock.validate.types import ComponentNode, ValidationResult

NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"

_TEMPLATE_NAME_RE = re.compile(r"([A-Za-z0-9_.-]+\.(?:ya?ml|json|template))\b")


class CyclicDependencyError(ValueError):
    def __init__(self, cycle):
        super().__init__("cyclic component dependencies: " + " -> ".join(cycle))
        self.cycle = cycle


def _flatten_strings(node) -> list[str]:
    if isinstance(node, str):
        return [node]
    if isinstance(node, dict):
        return [s for v in node.values() for s in _flatten_strings(v)]
    if isinstance(node, list):
        return [s for v in node for s in _flatten_strings(v)]
    return []


def template_name_from_url(url) -> str | None:
    """Extract the template file name from a TemplateURL (string, Fn::Sub or Fn::Join)."""
    joined = "".join(_flatten_strings(url))
    matches = _TEMPLATE_NAME_RE.findall(joined)
    return matches[-1] if matches else None


def build_component_graph(composition) -> dict[str, ComponentNode]:
    """Return ComponentNodes keyed by nested-stack logical ID."""
    resources = composition.get("Resources") or {}
    nested = {
        logical_id: resource
        for logical_id, resource in resources.items()
        if isinstance(resource, dict) and resource.get("Type") == NESTED_STACK_TYPE
    }

    nodes = {}
    for logical_id, resource in nested.items():
        props = resource.get("Properties") or {}
        depends = resource.get("DependsOn") or []
        if isinstance(depends, str):
            depends = [depends]
        edges = {d for d in depends if d in nested}
        edges |= {target for _, target in collect_references(props) if target in nested}
        edges.discard(logical_id)
        nodes[logical_id] = ComponentNode(
            name=logical_id,
            template=template_name_from_url(props.get("TemplateURL")),
            depends_on=edges,
        )
    return nodes


def find_cycle(nodes: dict[str, ComponentNode]) -> list[str] | None:
    """Return one cycle as a node path (first node repeated at the end), or None."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = dict.fromkeys(nodes, WHITE)
    stack = []

    def visit(name):
        color[name] = GREY
        stack.append(name)
        for dep in sorted(nodes[name].depends_on):
            if color.get(dep) == GREY:
                return stack[stack.index(dep) :] + [dep]
            if color.get(dep) == WHITE:
                cycle = visit(dep)
                if cycle:
                    return cycle
        stack.pop()
        color[name] = BLACK
        return None

    for name in sorted(nodes):
        if color[name] == WHITE:
            cycle = visit(name)
            if cycle:
                return cycle
    return None


def topological_order(nodes: dict[str, ComponentNode]) -> list[str]:
    """Creation order: dependencies first, ties broken by name. Raises CyclicDependencyError."""
    cycle = find_cycle(nodes)
    if cycle:
        raise CyclicDependencyError(cycle)

    remaining = {name: set(node.depends_on) for name, node in nodes.items()}
    order = []
    while remaining:
        ready = sorted(name for name, deps in remaining.items() if not deps)
        for name in ready:
            order.append(name)
            del remaining[name]
        for deps in remaining.values():
            deps.difference_update(ready)
    return order


def check_dependencies(composition, component_names, result: ValidationResult) -> dict[str, ComponentNode]:
    """Every nested stack must point at a component in the batch, and the graph must be acyclic."""
    nodes = build_component_graph(composition)
    available = set(component_names)

    for name, node in sorted(nodes.items()):
        if node.template is None:
            result.add_error(f"component '{name}' has no resolvable TemplateURL")
        elif node.template not in available:
            result.add_error(f"component '{name}' references template '{node.template}' which is not in the batch")

    cycle = find_cycle(nodes)
    if cycle:
        result.add_error("cyclic component dependencies: " + " -> ".join(cycle))
    return nodes
