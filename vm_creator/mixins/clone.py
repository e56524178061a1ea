"""
Clone orchestration mixin

Builds the CloneSpec, submits VirtualMachine.Clone and supervises the
resulting task until it succeeds, fails, or the caller gives up waiting.
Giving up does not cancel the task in vCenter.
"""

import time
from typing import Any, Optional, Sequence

from pyVmomi import vim

from vm_creator.errors import (
    CloneCancelledError,
    OperationFailedError,
    SubmissionFailedError,
    UnexpectedResultShapeError,
    fault_detail,
)
from vm_creator.mixins.base import VCenterCallMixin
from vm_creator.mixins.network_backing import to_device_spec
from vm_creator.models import (
    CloneFailure,
    CloneOutcome,
    CloneRequest,
    CloneSuccess,
    DeviceEditInstruction,
    InventoryRef,
    ObjectKind,
)
from vm_creator.utils import format_elapsed


class CloneMixin(VCenterCallMixin):
    """Mixin providing template clone submission and task supervision"""

    def build_clone_request(self, template: InventoryRef, folder: InventoryRef, name: str,
                            datastore: InventoryRef, resource_pool: InventoryRef,
                            device_edits: Sequence[DeviceEditInstruction] = ()) -> CloneRequest:
        return CloneRequest(
            source_template=template,
            destination_folder=folder,
            name=name,
            datastore=datastore,
            resource_pool=resource_pool,
            power_on=False,
            template=False,
            device_edits=tuple(device_edits),
        )

    def build_clone_spec(self, request: CloneRequest) -> Any:
        relocate_spec = vim.vm.RelocateSpec()
        relocate_spec.datastore = request.datastore.obj
        relocate_spec.pool = request.resource_pool.obj

        clone_spec = vim.vm.CloneSpec()
        clone_spec.location = relocate_spec
        clone_spec.powerOn = request.power_on
        clone_spec.template = request.template

        if request.device_edits:
            config_spec = vim.vm.ConfigSpec()
            config_spec.deviceChange = [to_device_spec(edit) for edit in request.device_edits]
            clone_spec.config = config_spec
            self.log(f"{len(request.device_edits)} network device(s) prepared for modification in clone spec.")

        return clone_spec

    def submit_clone(self, request: CloneRequest, clone_spec: Any = None) -> Any:
        """
        Start the clone task.

        Raises:
            SubmissionFailedError: vCenter refused the request or the call
                never reached it (permission, duplicate name, transport)
        """
        if clone_spec is None:
            clone_spec = self.build_clone_spec(request)

        self.cancel_token.raise_if_cancelled("submit clone")
        self.log(f"Starting clone operation for VM '{request.name}' from template "
                 f"'{request.source_template.name}' into folder '{request.destination_folder.name}'...")
        try:
            task = request.source_template.obj.Clone(
                folder=request.destination_folder.obj,
                name=request.name,
                spec=clone_spec,
            )
        except Exception as e:
            raise SubmissionFailedError(request.name, e) from e

        if task is None:
            raise SubmissionFailedError(request.name, RuntimeError("vCenter returned no task for the clone request"))

        self.log(f"Clone task submitted (Task MOID: {self._task_id(task)}). Waiting for result...")
        return task

    def wait_for_clone_task(self, task: Any, timeout: Optional[float] = None) -> Any:
        """
        Poll the task until it reaches a terminal state.

        Returns the TaskInfo of a successful task.

        Raises:
            OperationFailedError: the task ended in the error state
            CloneCancelledError: the cancel token tripped or ``timeout`` passed
        """
        task_id = self._task_id(task)
        start = time.monotonic()
        last_progress = None

        while True:
            info = self._remote(f"poll clone task {task_id}", lambda: task.info)
            state = info.state

            if state == vim.TaskInfo.State.success:
                return info

            if state == vim.TaskInfo.State.error:
                raise self._operation_failure(info.error, task_id)

            if info.progress is not None and info.progress != last_progress:
                self.log(f"Clone task {task_id} {state}: {info.progress}%", "DEBUG")
                last_progress = info.progress

            if timeout is not None and self._elapsed(start) >= timeout:
                raise CloneCancelledError(f"wait for clone task {task_id}",
                                          f"task did not finish within {timeout:.0f}s; it keeps running in vCenter")

            if self.cancel_token.wait(self.settings.task_poll_interval):
                raise CloneCancelledError(f"wait for clone task {task_id}",
                                          f"{self.cancel_token.reason}; task keeps running in vCenter")

    def clone_vm(self, request: CloneRequest) -> CloneOutcome:
        """
        Submit the clone and map its terminal state to an outcome.

        Submission problems and cancellation raise; a task that runs and fails
        comes back as CloneFailure.
        """
        task = self.submit_clone(request)
        task_id = self._task_id(task)
        start = time.monotonic()

        try:
            info = self.wait_for_clone_task(task, timeout=self.settings.task_timeout)
        except OperationFailedError as e:
            self.log(f"✗ {e.message} (Task MOID: {task_id})", "ERROR")
            return CloneFailure(message=e.message, platform_detail=e.platform_detail, step="clone")

        elapsed = self._elapsed(start)
        self.log(f"Clone task completed (took {format_elapsed(elapsed)} for waiting).")

        result = info.result
        if not isinstance(result, vim.VirtualMachine):
            raise UnexpectedResultShapeError(result)

        new_vm = InventoryRef.from_managed_object(ObjectKind.VIRTUAL_MACHINE, result, name=request.name)
        self.log(f"✓ Successfully cloned VM: {new_vm} into folder '{request.destination_folder.name}'.")
        return CloneSuccess(new_vm=new_vm, task_id=task_id, elapsed=elapsed)

    @staticmethod
    def _task_id(task: Any) -> str:
        return str(getattr(task, '_moId', '?'))

    @staticmethod
    def _operation_failure(fault: Any, task_id: str) -> OperationFailedError:
        detail = fault_detail(fault)
        if detail:
            return OperationFailedError(f"Clone task failed. Reason from vCenter: {detail}",
                                        platform_detail=detail, task_id=task_id)
        raw = str(fault) if fault is not None else "task entered error state without fault details"
        return OperationFailedError(f"Clone task failed: {raw}", task_id=task_id)
