"""CloudFormation control-plane client backed by boto3.

Every boto3 call is blocking; it runs in a worker thread so the polling loop
stays cancellable. Only one call is in flight at a time.
"""

import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stackdock.errors import ConcurrentDeploymentError, DeploymentFailureError, InvalidInputError
from stackdock.provisioning.base import DURABLE_RESOURCE_TYPES, ControlPlane
from stackdock.provisioning.types import (
    CREATE,
    NOOP,
    UPDATE,
    StackDescription,
    StackOutput,
    StackResource,
    StackState,
    SubmitResult,
    state_from_status,
)
from stackdock.validate.types import ValidationResult

logger = logging.getLogger(__name__)

INLINE_TEMPLATE_LIMIT = 51200
NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"

_NO_UPDATES = "No updates are to be performed"
_BUSY_MARKERS = ("_IN_PROGRESS state and can not be updated", "is in DELETE_IN_PROGRESS", "already in progress")


def _error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", str(e))


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def _is_missing_stack(e: ClientError) -> bool:
    return "does not exist" in _error_message(e)


class CloudFormationControlPlane(ControlPlane):
    """ControlPlane over the CloudFormation and EC2 APIs."""

    def __init__(self, region, session=None, cfn=None, ec2=None):
        self.region = region
        session = session or boto3.session.Session(region_name=region)
        self.cfn = cfn or session.client("cloudformation", region_name=region)
        self.ec2 = ec2 or session.client("ec2", region_name=region)

    async def _call(self, fn, **kwargs):
        return await asyncio.to_thread(fn, **kwargs)

    async def known_regions(self) -> set[str]:
        try:
            resp = await self._call(self.ec2.describe_regions)
        except (ClientError, BotoCoreError) as e:
            raise InvalidInputError(f"Could not verify region {self.region}: {e}", self.region) from e
        return {r["RegionName"] for r in resp.get("Regions", [])}

    async def validate_artifact(self, artifact) -> ValidationResult:
        result = ValidationResult(artifact=artifact.logical_name)
        body = artifact.read_text()
        if len(body.encode()) > INLINE_TEMPLATE_LIMIT:
            result.add_warning(
                f"template exceeds the {INLINE_TEMPLATE_LIMIT // 1024}KB inline limit; control-plane validation skipped"
            )
            return result
        try:
            await self._call(self.cfn.validate_template, TemplateBody=body)
        except ClientError as e:
            result.add_error(f"control-plane validation failed: {_error_message(e)}")
        except BotoCoreError as e:
            result.add_error(f"control-plane validation unavailable: {e}")
        return result

    async def describe_stack(self, stack) -> StackDescription:
        try:
            resp = await self._call(self.cfn.describe_stacks, StackName=stack)
        except ClientError as e:
            if _is_missing_stack(e):
                return StackDescription(stack_name=stack, state=StackState.ABSENT)
            raise DeploymentFailureError(f"Could not describe stack: {_error_message(e)}", stack) from e
        except BotoCoreError as e:
            raise DeploymentFailureError(f"Control plane unreachable: {e}", stack) from e
        stacks = resp.get("Stacks", [])
        if not stacks:
            return StackDescription(stack_name=stack, state=StackState.ABSENT)
        s = stacks[0]
        status = s.get("StackStatus", "")
        return StackDescription(
            stack_name=s.get("StackName", stack),
            stack_id=s.get("StackId", ""),
            state=state_from_status(status),
            status=status,
            reason=s.get("StackStatusReason", ""),
            outputs=[
                StackOutput(key=o["OutputKey"], value=o.get("OutputValue", ""), description=o.get("Description", ""))
                for o in s.get("Outputs", [])
            ],
        )

    async def create_or_update_stack(self, request) -> SubmitResult:
        current = await self.describe_stack(request.stack_name)
        if current.state.busy:
            raise ConcurrentDeploymentError(
                f"Stack is {current.status}; another operation is in flight",
                request.stack_name,
            )

        kwargs = {
            "StackName": request.stack_name,
            "TemplateURL": request.template_url,
            "Parameters": [{"ParameterKey": k, "ParameterValue": v} for k, v in request.parameters.items()],
            "Capabilities": list(request.capabilities),
            "Tags": [{"Key": k, "Value": v} for k, v in request.tags.items()],
        }

        try:
            if current.exists:
                logger.debug(f"Stack {request.stack_name} exists ({current.status}), updating")
                resp = await self._call(self.cfn.update_stack, **kwargs)
                return SubmitResult(stack_id=resp.get("StackId", current.stack_id), operation=UPDATE)
            logger.debug(f"Stack {request.stack_name} absent, creating")
            resp = await self._call(self.cfn.create_stack, OnFailure="ROLLBACK", **kwargs)
            return SubmitResult(stack_id=resp["StackId"], operation=CREATE)
        except ClientError as e:
            message = _error_message(e)
            if _NO_UPDATES in message:
                return SubmitResult(stack_id=current.stack_id, operation=NOOP)
            if _error_code(e) == "AlreadyExistsException" or any(m in message for m in _BUSY_MARKERS):
                raise ConcurrentDeploymentError(f"Control plane rejected submission: {message}", request.stack_name) from e
            raise DeploymentFailureError(
                f"Control plane rejected submission: {message}",
                request.stack_name,
                status=current.status or None,
                reason=message,
            ) from e
        except BotoCoreError as e:
            raise DeploymentFailureError(f"Control plane unreachable: {e}", request.stack_name) from e

    async def delete_stack(self, stack):
        try:
            await self._call(self.cfn.delete_stack, StackName=stack)
        except (ClientError, BotoCoreError) as e:
            raise DeploymentFailureError(f"Control plane rejected deletion: {e}", stack) from e

    async def _list_resources(self, stack) -> list[dict]:
        paginator = self.cfn.get_paginator("list_stack_resources")

        def _collect():
            items = []
            for page in paginator.paginate(StackName=stack):
                items.extend(page.get("StackResourceSummaries", []))
            return items

        return await asyncio.to_thread(_collect)

    async def list_durable_resources(self, stack) -> list[StackResource]:
        found = []
        pending = [stack]
        while pending:
            current = pending.pop(0)
            try:
                summaries = await self._list_resources(current)
            except ClientError as e:
                if _is_missing_stack(e):
                    continue
                raise DeploymentFailureError(f"Could not list stack resources: {_error_message(e)}", current) from e
            except BotoCoreError as e:
                raise DeploymentFailureError(f"Control plane unreachable: {e}", current) from e
            for r in summaries:
                if r.get("ResourceStatus") == "DELETE_COMPLETE":
                    continue
                rtype = r.get("ResourceType", "")
                physical = r.get("PhysicalResourceId", "")
                if rtype == NESTED_STACK_TYPE and physical:
                    pending.append(physical)
                elif rtype in DURABLE_RESOURCE_TYPES:
                    found.append(
                        StackResource(
                            logical_id=r.get("LogicalResourceId", ""),
                            resource_type=rtype,
                            physical_id=physical,
                            stack_name=current,
                        )
                    )
        return found

    async def failure_reason(self, stack) -> str | None:
        try:
            resp = await self._call(self.cfn.describe_stack_events, StackName=stack)
        except (ClientError, BotoCoreError) as e:
            logger.debug(f"Could not read stack events for {stack}: {e}")
            return None

        # Events are newest first. Walk back to the start of the latest
        # operation; the oldest failure in it is the root cause.
        reason = None
        for event in resp.get("StackEvents", []):
            status = event.get("ResourceStatus", "")
            text = event.get("ResourceStatusReason", "")
            if status.endswith("_FAILED") and text and "cancelled" not in text.lower():
                reason = f"{event.get('LogicalResourceId', '?')}: {text}"
            if event.get("PhysicalResourceId") == event.get("StackId") and text == "User Initiated":
                break
        return reason
