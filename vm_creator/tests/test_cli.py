import unittest
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from vm_creator.cli import main
from vm_creator.creator import RunSummary
from vm_creator.errors import (
    CloneCancelledError,
    SubmissionFailedError,
    VCenterConnectionError,
)
from vm_creator.models import CloneFailure, CloneSuccess, InventoryRef, ObjectKind

ENV = {
    "VMWARE_URL": "https://vc01.example.com",
    "VMWARE_USERNAME": "svc-clone",
    "VMWARE_PASSWORD": "secret",
}

CLONE_ARGS = [
    "--datacenter", "DC1", "--cluster", "CL1", "--template", "/DC1/vm/Templates/T",
    "--vm-name", "db01", "--datastore", "DS1", "--network", "NET1", "--folder", "Databases",
    "--env-file", "/nonexistent/.env",
]


@patch("vm_creator.cli.disconnect_vcenter")
@patch("vm_creator.cli.connect_vcenter")
@patch("vm_creator.cli.VMCreator")
class MainTests(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    def invoke(self, args, env=None):
        return self.runner.invoke(main, args, env=env if env is not None else ENV)

    def test_successful_clone_prints_new_vm(self, creator_cls, connect, disconnect):
        new_vm = InventoryRef(ObjectKind.VIRTUAL_MACHINE, "vm-1001", "db01")
        creator_cls.return_value.run_clone.return_value = RunSummary(
            outcome=CloneSuccess(new_vm=new_vm, task_id="task-101"), started_at="2024-01-01T00:00:00+00:00")

        result = self.invoke(CLONE_ARGS)

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("db01 vm-1001", result.output)
        params = creator_cls.return_value.run_clone.call_args.args[0]
        self.assertEqual(params.template, "/DC1/vm/Templates/T")
        self.assertIsNone(params.resource_pool)
        disconnect.assert_called_once_with(connect.return_value)

    def test_failed_outcome_exits_nonzero(self, creator_cls, connect, disconnect):
        creator_cls.return_value.run_clone.return_value = RunSummary(
            outcome=CloneFailure(message="Cluster 'CL1' not found", step="cluster"), started_at="")

        result = self.invoke(CLONE_ARGS)

        self.assertEqual(result.exit_code, 1)
        disconnect.assert_called_once()

    def test_submission_failure_exits_nonzero(self, creator_cls, connect, disconnect):
        creator_cls.return_value.run_clone.side_effect = SubmissionFailedError("db01", RuntimeError("denied"))

        result = self.invoke(CLONE_ARGS)

        self.assertEqual(result.exit_code, 1)
        disconnect.assert_called_once()

    def test_cancellation_exits_130(self, creator_cls, connect, disconnect):
        creator_cls.return_value.run_clone.side_effect = CloneCancelledError("wait for clone task", "deadline exceeded")

        result = self.invoke(CLONE_ARGS + ["--timeout", "5"])

        self.assertEqual(result.exit_code, 130)
        token = creator_cls.call_args.args[2]
        self.assertIsNotNone(token.deadline)

    def test_interrupt_exits_130(self, creator_cls, connect, disconnect):
        creator_cls.return_value.run_clone.side_effect = KeyboardInterrupt

        result = self.invoke(CLONE_ARGS)

        self.assertEqual(result.exit_code, 130)
        disconnect.assert_called_once()

    def test_missing_clone_options_is_a_usage_error(self, creator_cls, connect, disconnect):
        result = self.invoke(["--datacenter", "DC1", "--cluster", "CL1", "--env-file", "/nonexistent/.env"])

        self.assertEqual(result.exit_code, 2)
        self.assertIn("--template", result.output)
        connect.assert_not_called()

    def test_missing_connection_settings(self, creator_cls, connect, disconnect):
        result = self.invoke(CLONE_ARGS, env={"VMWARE_URL": "", "VMWARE_USERNAME": "", "VMWARE_PASSWORD": ""})

        self.assertEqual(result.exit_code, 1)
        connect.assert_not_called()

    def test_malformed_setting_exits_nonzero(self, creator_cls, connect, disconnect):
        result = self.invoke(CLONE_ARGS, env={**ENV, "VM_CREATOR_TASK_POLL_INTERVAL": "abc"})

        self.assertEqual(result.exit_code, 1)
        # A clean exit, not a pydantic traceback
        self.assertIsInstance(result.exception, SystemExit)
        connect.assert_not_called()
        creator_cls.assert_not_called()

    def test_connection_failure(self, creator_cls, connect, disconnect):
        connect.side_effect = VCenterConnectionError("vc01.example.com", "Authentication Failed")

        result = self.invoke(CLONE_ARGS)

        self.assertEqual(result.exit_code, 1)
        creator_cls.assert_not_called()
        disconnect.assert_called_once_with(None)

    def test_inspect_mode_prints_lines_only(self, creator_cls, connect, disconnect):
        creator = MagicMock()
        creator.run_inspect.return_value = ["Hardware devices for VM 'web01':", "  NIC Label: Network adapter 1"]
        creator_cls.return_value = creator

        result = self.invoke(["--datacenter", "DC1", "--inspect-vm", "web01", "--env-file", "/nonexistent/.env"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Hardware devices for VM 'web01':", result.output)
        creator.run_inspect.assert_called_once_with("DC1", "web01")
        creator.run_clone.assert_not_called()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
