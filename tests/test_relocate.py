import types
from unittest.mock import MagicMock

import pytest
from pyVmomi import vim

from migrateutils import relocate
from migrateutils.relocate import (MigrationError, waitForTask, setupNetworks,
                                   buildRelocateSpec, checkRelocate, moveToFolder, migrateVm)
from migrateutils.planner import MigrationPlan, PlannerConfig, ELIGIBLE
from conftest import named, makeNic, standardBacking, FakeTask, successTask


def makePlan(networks=(("Network adapter 1", "App"),), folder=None, datastore="ds1"):
    return MigrationPlan(vm="web01", verdict=ELIGIBLE, reason=None, datastore=datastore,
                         networks=networks, folder=folder)


def makeVm():
    vm = named("web01")
    vm.config.instanceUuid = "5001aa11"
    vm.config.hardware.device = [
        vim.vm.device.VirtualDisk(key=2000),
        makeNic("Network adapter 1", standardBacking("VM Network"), key=4000),
    ]
    return vm


@pytest.fixture()
def dest():
    dest = MagicMock()
    dest.host = named("esx10", cls=vim.HostSystem)
    dest.datacenter = named("DC2", cls=vim.Datacenter)
    dest.getResourcePool.return_value = named("Resources", cls=vim.ResourcePool)
    dest.getDatastore.return_value = named("ds1", cls=vim.Datastore)
    dvpg = named("App", cls=vim.dvs.DistributedVirtualPortgroup)
    dvpg.key = "dvportgroup-2"
    dvpg.config.distributedVirtualSwitch.uuid = "50 1a 2b"
    dest.getPortgroup.return_value = dvpg
    root = named("vm", cls=vim.Folder)
    web = named("Web", cls=vim.Folder)
    dest.getFolder.side_effect = lambda name: {None: root, "Web": web}.get(name)
    return dest


@pytest.fixture(autouse=True)
def noSleep(mocker):
    return mocker.patch.object(relocate.time, "sleep")


class TestWaitForTask:
    def test_success(self):
        task = FakeTask([vim.TaskInfo.State.queued, vim.TaskInfo.State.running,
                         vim.TaskInfo.State.success], result="done")
        assert waitForTask(task) == "done"

    def test_error(self):
        task = FakeTask([vim.TaskInfo.State.running, vim.TaskInfo.State.error],
                        error=types.SimpleNamespace(msg="Insufficient resources"))
        with pytest.raises(MigrationError, match="Insufficient resources"):
            waitForTask(task)

    def test_error_without_fault(self):
        with pytest.raises(MigrationError, match="task-1"):
            waitForTask(FakeTask([vim.TaskInfo.State.error]))


class TestSetupNetworks:
    def test_distributed_portgroup(self, dest):
        netdevs = setupNetworks(makeVm(), dest, makePlan())
        assert len(netdevs) == 1
        assert netdevs[0].operation == vim.vm.device.VirtualDeviceSpec.Operation.edit
        port = netdevs[0].device.backing.port
        assert port.portgroupKey == "dvportgroup-2"
        assert port.switchUuid == "50 1a 2b"
        assert netdevs[0].device.key == 4000
        dest.getPortgroup.assert_called_once_with("App")

    def test_standard_portgroup(self, dest):
        dest.getPortgroup.return_value = named("VM Network", cls=vim.Network)
        netdevs = setupNetworks(makeVm(), dest,
                                makePlan(networks=(("Network adapter 1", "VM Network"),)))
        backing = netdevs[0].device.backing
        assert isinstance(backing, vim.vm.device.VirtualEthernetCard.NetworkBackingInfo)
        assert backing.deviceName == "VM Network"

    def test_unmapped_network(self, dest):
        with pytest.raises(MigrationError, match="Network adapter 1"):
            setupNetworks(makeVm(), dest, makePlan(networks=(("Network adapter 1", None),)))

    def test_portgroup_gone(self, dest):
        dest.getPortgroup.return_value = None
        with pytest.raises(MigrationError, match="Port group App"):
            setupNetworks(makeVm(), dest, makePlan())


class TestBuildRelocateSpec:
    def test_same_vcenter(self, dest):
        spec = buildRelocateSpec(makeVm(), dest, makePlan())
        assert spec.host is dest.host
        assert spec.datastore.name == "ds1"
        assert spec.pool.name == "Resources"
        assert spec.service is None
        assert spec.folder is None
        assert len(spec.deviceChange) == 1

    def test_cross_vcenter(self, dest):
        service = vim.ServiceLocator(instanceUuid="vc-b-uuid", url="https://vc-b:443",
                                     credential=vim.ServiceLocator.NamePassword(
                                         username="admin", password="secret"))
        spec = buildRelocateSpec(makeVm(), dest, makePlan(folder="Web"), service=service)
        assert spec.service is service
        # placed at the datacenter root, moved into its folder afterwards
        assert spec.folder.name == "vm"

    def test_other_datacenter(self, dest):
        spec = buildRelocateSpec(makeVm(), dest, makePlan(), placeInDatacenter=True)
        assert spec.folder.name == "vm"

    def test_missing_datastore(self, dest):
        dest.getDatastore.return_value = None
        with pytest.raises(MigrationError, match="Datastore ds1"):
            buildRelocateSpec(makeVm(), dest, makePlan())


class TestCheckRelocate:
    def test_warnings(self, dest):
        checker = MagicMock()
        checker.CheckRelocate_Task.return_value = successTask(
            [types.SimpleNamespace(error=None,
                                   warning=[types.SimpleNamespace(msg="CBRC enabled")])])
        assert checkRelocate(checker, makeVm(), dest, "spec") == ["CBRC enabled"]
        kwargs = checker.CheckRelocate_Task.call_args[1]
        assert kwargs["host"] is dest.host
        assert kwargs["spec"] == "spec"

    def test_cross_vcenter_leaves_host_to_spec(self, dest):
        checker = MagicMock()
        checker.CheckRelocate_Task.return_value = successTask([])
        assert checkRelocate(checker, makeVm(), dest, "spec", crossVc=True) == []
        kwargs = checker.CheckRelocate_Task.call_args[1]
        assert kwargs["host"] is None
        assert kwargs["spec"] == "spec"

    def test_errors(self, dest):
        checker = MagicMock()
        checker.CheckRelocate_Task.return_value = successTask(
            [types.SimpleNamespace(error=[types.SimpleNamespace(msg="CPU incompatible")],
                                   warning=[])])
        with pytest.raises(MigrationError, match="CPU incompatible"):
            checkRelocate(checker, makeVm(), dest, "spec")


class TestMoveToFolder:
    def test_root_is_not_moved(self, dest, logger):
        assert not moveToFolder(makeVm(), dest, makePlan(folder=None), logger)

    def test_move(self, dest, logger):
        vm = makeVm()
        folder = dest.getFolder("Web")
        folder.MoveIntoFolder_Task.return_value = successTask()
        assert moveToFolder(vm, dest, makePlan(folder="Web"), logger)
        folder.MoveIntoFolder_Task.assert_called_once_with([vm])

    def test_already_in_folder(self, dest, logger):
        vm = makeVm()
        vm.parent = dest.getFolder("Web")
        assert not moveToFolder(vm, dest, makePlan(folder="Web"), logger)

    def test_cross_vcenter_looks_up_vm_on_destination(self, dest, logger):
        moved = named("web01")
        dest.inv.searchIndex.FindByUuid.return_value = moved
        folder = dest.getFolder("Web")
        folder.MoveIntoFolder_Task.return_value = successTask()
        moveToFolder(makeVm(), dest, makePlan(folder="Web"), logger, uuid="5001aa11")
        dest.inv.searchIndex.FindByUuid.assert_called_once_with(None, "5001aa11", True, True)
        folder.MoveIntoFolder_Task.assert_called_once_with([moved])

    def test_missing_folder(self, dest, logger):
        with pytest.raises(MigrationError, match="Ops"):
            moveToFolder(makeVm(), dest, makePlan(folder="Ops"), logger)


class TestMigrateVm:
    def test_dry_run_only_checks(self, dest, logger):
        vm = makeVm()
        checker = MagicMock()
        checker.CheckRelocate_Task.return_value = successTask([])
        assert not migrateVm(vm, dest, makePlan(folder="Web"), PlannerConfig(dryRun=True),
                             logger, checker=checker)
        checker.CheckRelocate_Task.assert_called_once()
        vm.RelocateVM_Task.assert_not_called()
        dest.getFolder("Web").MoveIntoFolder_Task.assert_not_called()
        assert "would be moved into folder Web" in logger.infos[-1]

    def test_migrate(self, dest, logger):
        vm = makeVm()
        vm.RelocateVM_Task.return_value = successTask()
        dest.getFolder("Web").MoveIntoFolder_Task.return_value = successTask()
        assert migrateVm(vm, dest, makePlan(folder="Web"), PlannerConfig(dryRun=False), logger)
        kwargs = vm.RelocateVM_Task.call_args[1]
        assert kwargs["priority"] == vim.VirtualMachine.MovePriority.highPriority
        assert kwargs["spec"].host is dest.host
        dest.getFolder("Web").MoveIntoFolder_Task.assert_called_once_with([vm])

    def test_task_failure(self, dest, logger):
        vm = makeVm()
        vm.RelocateVM_Task.return_value = FakeTask(
            [vim.TaskInfo.State.error], error=types.SimpleNamespace(msg="Host unreachable"))
        with pytest.raises(MigrationError, match="Host unreachable"):
            migrateVm(vm, dest, makePlan(), PlannerConfig(dryRun=False), logger)

    def test_fault_is_wrapped(self, dest, logger):
        vm = makeVm()
        vm.RelocateVM_Task.side_effect = vim.fault.InvalidState(msg="VM is busy")
        with pytest.raises(MigrationError, match="VM is busy"):
            migrateVm(vm, dest, makePlan(), PlannerConfig(dryRun=False), logger)

    def test_unmapped_network_never_migrates(self, dest, logger):
        vm = makeVm()
        with pytest.raises(MigrationError):
            migrateVm(vm, dest, makePlan(networks=(("Network adapter 1", None),)),
                      PlannerConfig(dryRun=False), logger)
        vm.RelocateVM_Task.assert_not_called()

    def test_cross_vcenter_dry_run(self, dest, logger):
        service = vim.ServiceLocator(instanceUuid="vc-b-uuid", url="https://vc-b:443")
        checker = MagicMock()
        checker.CheckRelocate_Task.return_value = successTask([])
        assert not migrateVm(makeVm(), dest, makePlan(), PlannerConfig(dryRun=True),
                             logger, checker=checker, service=service)
        kwargs = checker.CheckRelocate_Task.call_args[1]
        assert kwargs["host"] is None
        assert kwargs["spec"].host is dest.host
        assert kwargs["spec"].service is service

    def test_folder_move_failure_still_counts_as_migrated(self, dest, logger):
        vm = makeVm()
        vm.RelocateVM_Task.return_value = successTask()
        dest.getFolder("Web").MoveIntoFolder_Task.return_value = FakeTask(
            [vim.TaskInfo.State.error], error=types.SimpleNamespace(msg="NoPermission"))
        assert migrateVm(vm, dest, makePlan(folder="Web"), PlannerConfig(dryRun=False), logger)
        vm.RelocateVM_Task.assert_called_once()
        assert any("not moved into folder Web" in w and "NoPermission" in w
                   for w in logger.warns)

    def test_folder_move_fault_is_logged(self, dest, logger):
        vm = makeVm()
        vm.RelocateVM_Task.return_value = successTask()
        dest.getFolder("Web").MoveIntoFolder_Task.side_effect = vim.fault.DuplicateName(
            msg="The name 'web01' already exists")
        assert migrateVm(vm, dest, makePlan(folder="Web"), PlannerConfig(dryRun=False), logger)
        assert any("already exists" in w for w in logger.warns)
