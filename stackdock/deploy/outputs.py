"""Output Reporter: fetch and render stack outputs after a successful deploy."""

import logging
import re
from dataclasses import dataclass, field

from stackdock.provisioning.types import StackOutput

logger = logging.getLogger(__name__)

OUTPUTS_OK = 0
OUTPUTS_UNAVAILABLE = 3

_ENDPOINT_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*://\S+|[A-Za-z0-9.-]+\.amazonaws\.com(?::\d+)?(?:/\S*)?)$")


def is_endpoint(value) -> bool:
    """URL- or AWS-hostname-shaped output values."""
    return bool(_ENDPOINT_RE.match(value or ""))


@dataclass
class OutputReport:
    outputs: list[StackOutput] = field(default_factory=list)
    code: int = OUTPUTS_OK
    warning: str | None = None

    @property
    def endpoints(self) -> list[StackOutput]:
        return [o for o in self.outputs if is_endpoint(o.value)]

    def as_dict(self) -> dict[str, str]:
        return {o.key: o.value for o in self.outputs}


def render_outputs(outputs) -> list[str]:
    """Aligned two-column table lines (Key | Value)."""
    if not outputs:
        return ["(no outputs)"]
    key_width = max(len("OutputKey"), *(len(o.key) for o in outputs))
    value_width = max(len("OutputValue"), *(len(o.value) for o in outputs))
    border = f"+-{'-' * key_width}-+-{'-' * value_width}-+"
    lines = [border, f"| {'OutputKey'.ljust(key_width)} | {'OutputValue'.ljust(value_width)} |", border]
    for o in outputs:
        lines.append(f"| {o.key.ljust(key_width)} | {o.value.ljust(value_width)} |")
    lines.append(border)
    return lines


async def report_outputs(control_plane, stack) -> OutputReport:
    """Read and log the stack's outputs.

    A read failure never undoes a deploy: it is logged as a warning and
    returned as OUTPUTS_UNAVAILABLE.
    """
    logger.info("Getting stack outputs...")
    try:
        desc = await control_plane.describe_stack(stack)
    except Exception as e:
        warning = f"Could not read outputs for {stack}: {e}"
        logger.warning(f"Warning: {warning}")
        return OutputReport(code=OUTPUTS_UNAVAILABLE, warning=warning)

    for line in render_outputs(desc.outputs):
        logger.info(line)
    return OutputReport(outputs=list(desc.outputs))
