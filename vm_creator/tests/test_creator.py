import unittest
from unittest.mock import MagicMock

from pyVmomi import vim, vmodl

from vm_creator.creator import CloneParameters
from vm_creator.errors import ObjectNotFoundError, SubmissionFailedError
from vm_creator.models import CloneFailure, CloneSuccess
from vm_creator.tests.fakes import (
    FakeTask,
    RecordingCreator,
    managed_object,
    network_name_backing,
    nic,
    standard_inventory,
    task_info,
)


def params(**overrides):
    values = dict(datacenter="DC1", cluster="CL1", template="/DC1/vm/Templates/T", vm_name="db01",
                  datastore="DS1", network="NET1", folder="Databases")
    values.update(overrides)
    return CloneParameters(**values)


class RunCloneTests(unittest.TestCase):
    def setUp(self):
        self.vc = standard_inventory()
        self.new_vm = managed_object(vim.VirtualMachine, "vm-1001", "db01")
        self.vc.template.Clone = MagicMock(return_value=FakeTask(task_info("success", result=self.new_vm)))
        self.creator = RecordingCreator(self.vc.si)

    def test_clone_onto_distributed_portgroup(self):
        summary = self.creator.run_clone(params())

        self.assertTrue(summary.ok)
        self.assertIsInstance(summary.outcome, CloneSuccess)
        self.assertEqual(summary.outcome.new_vm.id, "vm-1001")
        self.assertEqual(summary.degraded_adapters, 0)
        self.assertEqual(list(summary.timings),
                         ["datacenter", "cluster", "resource_pool", "datastore", "network",
                          "template", "folder", "network_translation", "clone"])

        kwargs = self.vc.template.Clone.call_args.kwargs
        spec = kwargs["spec"]
        self.assertEqual(kwargs["name"], "db01")
        self.assertEqual(kwargs["folder"]._moId, "group-v100")
        self.assertEqual(spec.location.pool._moId, "resgroup-1")
        self.assertEqual(spec.location.datastore._moId, "datastore-12")
        change = spec.config.deviceChange[0]
        self.assertEqual(change.operation, "edit")
        self.assertIs(type(change.device), vim.vm.device.VirtualVmxnet3)
        self.assertEqual(change.device.key, 4000)
        self.assertEqual(change.device.backing.port.switchUuid, "uuid-1")
        self.assertEqual(change.device.backing.port.portgroupKey, "pg-1")

    def test_named_resource_pool(self):
        self.creator.run_clone(params(resource_pool="Gold"))

        spec = self.vc.template.Clone.call_args.kwargs["spec"]
        self.assertEqual(spec.location.pool._moId, "resgroup-20")

    def test_degraded_adapters_are_counted(self):
        self.vc.template.config.hardware.device.append(
            nic(vim.vm.device.VirtualVmxnet2, 4001, network_name_backing()))

        summary = self.creator.run_clone(params())

        self.assertTrue(summary.ok)
        self.assertEqual(summary.degraded_adapters, 1)
        self.assertTrue(any("generic VirtualEthernetCard" in m for m in self.creator.logged("WARN")))

    def test_first_failing_step_ends_the_run(self):
        summary = self.creator.run_clone(params(cluster="CL-MISSING"))

        self.assertFalse(summary.ok)
        self.assertIsInstance(summary.outcome, CloneFailure)
        self.assertEqual(summary.outcome.step, "cluster")
        self.assertIn("CL-MISSING", summary.outcome.message)
        self.assertEqual(list(summary.timings), ["datacenter", "cluster"])
        self.vc.template.Clone.assert_not_called()

    def test_standard_network_fails_translation(self):
        summary = self.creator.run_clone(params(network="VM Network"))

        self.assertEqual(summary.outcome.step, "network_translation")
        self.assertIn("not a DistributedVirtualPortgroup", summary.outcome.message)
        self.vc.template.Clone.assert_not_called()

    def test_failed_task_is_an_outcome(self):
        fault = vmodl.fault.SystemError(reason="io", msg="Insufficient disk space")
        self.vc.template.Clone = MagicMock(return_value=FakeTask(task_info("error", error=fault)))

        summary = self.creator.run_clone(params())

        self.assertFalse(summary.ok)
        self.assertEqual(summary.outcome.step, "clone")
        self.assertEqual(summary.outcome.platform_detail, "Insufficient disk space")

    def test_unexpected_result_is_a_clone_failure(self):
        self.vc.template.Clone = MagicMock(return_value=FakeTask(task_info("success", result=["vm-1", "vm-2"])))

        summary = self.creator.run_clone(params())

        self.assertFalse(summary.ok)
        self.assertEqual(summary.outcome.step, "clone")
        self.assertIn("not a VirtualMachine reference", summary.outcome.message)

    def test_submission_failure_propagates(self):
        self.vc.template.Clone = MagicMock(side_effect=vim.fault.NoPermission(msg="Permission to perform this operation was denied."))

        with self.assertRaises(SubmissionFailedError) as ctx:
            self.creator.run_clone(params())

        self.assertEqual(ctx.exception.step, "clone")
        self.assertIn("Insufficient permissions", ctx.exception.message)
        self.assertTrue(self.creator.logged("ERROR"))


class RunInspectTests(unittest.TestCase):
    def test_inspect_scopes_then_lists(self):
        vc = standard_inventory()
        creator = RecordingCreator(vc.si)

        lines = creator.run_inspect("DC1", "T")

        self.assertEqual(lines[0], "Hardware devices for VM 'T':")
        self.assertEqual(list(creator.timings), ["datacenter", "inspect"])

    def test_inspect_unknown_vm(self):
        creator = RecordingCreator(standard_inventory().si)

        with self.assertRaises(ObjectNotFoundError) as ctx:
            creator.run_inspect("DC1", "ghost")

        self.assertEqual(ctx.exception.step, "inspect")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
