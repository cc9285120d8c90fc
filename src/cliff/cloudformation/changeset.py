"""
Change set lifecycle: create, poll until terminal, delete.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError
from botocore.parsers import ResponseParserError

from .errors import CliffError, PollingError, classify
from .render import ChangeRecord, ChangeSetResult
from .retry import BackoffRetrier, retry_create, retry_throttling

logger = logging.getLogger(__name__)

CHANGE_SET_NAME = "cliff"
CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]

BOTO_ERRORS = (ClientError, BotoCoreError, ResponseParserError)


def is_in_flight(status: Optional[str]) -> bool:
    """Whether a change set status will still change on its own."""
    return bool(status) and status.endswith(("_PROGRESS", "_PENDING"))


@dataclass(frozen=True)
class ChangeSetRequest:
    """Everything needed to create the change set for one run."""

    stack_name: str
    template_body: str
    parameters: Tuple[Tuple[str, str], ...] = ()
    change_set_name: str = CHANGE_SET_NAME


@dataclass
class ChangeSetHandle:
    """A change set that exists on the service."""

    stack_name: str
    change_set_name: str
    change_set_id: Optional[str] = None
    status: Optional[str] = None
    deleted: bool = False

    @property
    def terminal(self) -> bool:
        return self.status is not None and not is_in_flight(self.status)


class ChangeSetLifecycle:
    """Drive a change set through its lifecycle against CloudFormation."""

    def __init__(
        self,
        cloudformation: Any,
        retrier: Optional[BackoffRetrier] = None,
        poll_interval: float = 0.5,
        poll_timeout: float = 600.0,
        cleanup_timeout: float = 120.0,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the lifecycle.

        Args:
            cloudformation: boto3 CloudFormation client
            retrier: Backoff used for template fetch and change set creation
            poll_interval: Seconds between describe calls while in flight
            poll_timeout: Upper bound in seconds for one poll loop
            cleanup_timeout: Poll bound used while cleaning up after an error
            cancel_event: Stops polling once set
        """
        self.cloudformation = cloudformation
        self.retrier = retrier or BackoffRetrier()
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.cleanup_timeout = cleanup_timeout
        self.cancel_event = cancel_event

    async def _call(self, operation: str, method: Callable[..., Dict[str, Any]], **params: Any):
        """Run a blocking boto3 call off the event loop, classifying failures."""
        try:
            return await asyncio.to_thread(method, **params)
        except BOTO_ERRORS as e:
            raise classify(e, operation) from e

    async def current_template(self, stack_name: str) -> str:
        """Fetch the template the stack was last deployed with."""
        response = await self.retrier.retry_if(
            lambda: self._call(
                "GetTemplate",
                self.cloudformation.get_template,
                StackName=stack_name,
                TemplateStage="Original",
            ),
            retry_throttling,
        )
        body = response.get("TemplateBody", "")
        if not isinstance(body, str):
            # boto3 decodes JSON templates into dicts
            body = json.dumps(body, indent=2)
        return body

    async def create(self, request: ChangeSetRequest) -> ChangeSetHandle:
        """Create the change set, retrying throttling and quota errors."""
        params = {
            "ChangeSetName": request.change_set_name,
            "StackName": request.stack_name,
            "TemplateBody": request.template_body,
            "Capabilities": CAPABILITIES,
            "Parameters": [
                {"ParameterKey": key, "ParameterValue": value}
                for key, value in request.parameters
            ],
        }
        response = await self.retrier.retry_if(
            lambda: self._call(
                "CreateChangeSet", self.cloudformation.create_change_set, **params
            ),
            retry_create,
        )
        logger.debug(f"created change set {response.get('Id')}")
        return ChangeSetHandle(
            stack_name=request.stack_name,
            change_set_name=request.change_set_name,
            change_set_id=response.get("Id"),
        )

    async def _describe(self, handle: ChangeSetHandle, **extra: Any) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(
                self.cloudformation.describe_change_set,
                ChangeSetName=handle.change_set_name,
                StackName=handle.stack_name,
                **extra,
            )
        except BOTO_ERRORS as e:
            raise PollingError("DescribeChangeSet", classify(e, "DescribeChangeSet")) from e

    async def _wait(self, delay: float, honor_cancel: bool = True) -> bool:
        """Wait between polls; True when cancellation was requested."""
        if self.cancel_event is None or not honor_cancel:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(self.cancel_event.wait(), delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def poll_until_terminal(
        self,
        handle: ChangeSetHandle,
        timeout: Optional[float] = None,
        honor_cancel: bool = True,
    ) -> ChangeSetResult:
        """Describe the change set until its status is terminal.

        With ``honor_cancel`` False the cancellation event is ignored and only
        the timeout bounds the loop; cleanup polls this way.
        """
        timeout = self.poll_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        cancellable = honor_cancel and self.cancel_event is not None

        while True:
            if cancellable and self.cancel_event.is_set():
                raise PollingError("DescribeChangeSet", "polling cancelled")

            response = await self._describe(handle)
            handle.status = response.get("Status", "")
            logger.debug(f"change set {handle.change_set_name} is {handle.status}")
            if not is_in_flight(handle.status):
                break

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PollingError(
                    "DescribeChangeSet",
                    f"change set still {handle.status} after {timeout:g}s",
                )
            if await self._wait(min(self.poll_interval, remaining), honor_cancel):
                raise PollingError("DescribeChangeSet", "polling cancelled")

        changes = list(response.get("Changes", []))
        token = response.get("NextToken")
        while token:
            page = await self._describe(handle, NextToken=token)
            changes.extend(page.get("Changes", []))
            token = page.get("NextToken")

        return ChangeSetResult(
            status=handle.status,
            status_reason=response.get("StatusReason"),
            changes=tuple(ChangeRecord.from_change(c) for c in changes),
        )

    async def delete(self, handle: ChangeSetHandle) -> None:
        """Delete the change set. Not retried."""
        if is_in_flight(handle.status):
            raise PollingError(
                "DeleteChangeSet", f"change set is still {handle.status}"
            )
        try:
            await asyncio.to_thread(
                self.cloudformation.delete_change_set,
                ChangeSetName=handle.change_set_name,
                StackName=handle.stack_name,
            )
        except BOTO_ERRORS as e:
            raise PollingError("DeleteChangeSet", classify(e, "DeleteChangeSet")) from e
        handle.deleted = True
        logger.debug(f"deleted change set {handle.change_set_name}")

    async def _cleanup(self, handle: ChangeSetHandle) -> None:
        """Best effort delete after an error; never masks the original error."""
        try:
            if not handle.terminal:
                await self.poll_until_terminal(
                    handle, timeout=self.cleanup_timeout, honor_cancel=False
                )
            await self.delete(handle)
        except CliffError as e:
            logger.warning(
                f"could not delete change set {handle.change_set_name} "
                f"on stack {handle.stack_name}: {e}"
            )

    @asynccontextmanager
    async def open(self, request: ChangeSetRequest) -> AsyncIterator[ChangeSetHandle]:
        """Create a change set that is deleted however the block exits."""
        handle = await self.create(request)
        try:
            yield handle
        except BaseException:
            if not handle.deleted:
                await self._cleanup(handle)
            raise
        if not handle.deleted:
            if not handle.terminal:
                try:
                    await self.poll_until_terminal(handle)
                except BaseException:
                    await self._cleanup(handle)
                    raise
            await self.delete(handle)


@dataclass
class StackDiff:
    template_diff: str
    result: ChangeSetResult


async def diff_stack(
    lifecycle: ChangeSetLifecycle,
    request: ChangeSetRequest,
    local_path: Path,
    differ: Any,
    on_template_diff: Optional[Callable[[str], None]] = None,
    on_result: Optional[Callable[[ChangeSetResult], None]] = None,
) -> StackDiff:
    """Diff a local template against a deployed stack.

    The deployed template is fetched while the change set is being created.
    Callbacks fire as soon as each part is known so that output survives a
    later failure to delete the change set.
    """
    template_task = asyncio.ensure_future(lifecycle.current_template(request.stack_name))
    try:
        async with lifecycle.open(request) as handle:
            current = await template_task
            template_diff = await asyncio.to_thread(differ.diff, current, local_path)
            if on_template_diff is not None:
                on_template_diff(template_diff)

            result = await lifecycle.poll_until_terminal(handle)
            if on_result is not None:
                on_result(result)
    finally:
        if not template_task.done():
            template_task.cancel()
        elif not template_task.cancelled():
            # mark a failed fetch as retrieved when creation failed first
            template_task.exception()

    return StackDiff(template_diff=template_diff, result=result)
