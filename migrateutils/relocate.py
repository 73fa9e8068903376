#!/usr/bin/env python3
# Disclaimer: This product is not supported by VMware.
# License: https://github.com/vmware/pyvmomi-community-samples/blob/master/LICENSE
import time
from pyVmomi import vim
from pyVmomi import vmodl
from migrateutils.inventory import getNics


class MigrationError(Exception):
    '''
    A single VM could not be migrated.  The run goes on with the next VM.
    '''
    pass


def waitForTask(task, interval=1):
    """
    Block until a vCenter task finishes, return its result or raise
    MigrationError with the task fault
    """
    while task.info.state in [vim.TaskInfo.State.queued, vim.TaskInfo.State.running]:
        time.sleep(interval)
    if task.info.state == vim.TaskInfo.State.success:
        return task.info.result
    if task.info.error:
        raise MigrationError(task.info.error.msg)
    raise MigrationError("Task %s ended in state %s" %(task.info.key, task.info.state))

def setupNetworks(vm, dest, plan):
    nics = dict([(n.deviceInfo.label, n) for n in getNics(vm)])
    netdevs = []
    for label, pgName in plan.networks:
        if pgName is None:
            raise MigrationError("No port group on destination switch for VM %s %s"
                                 %(vm.name, label))
        n = dest.getPortgroup(pgName)
        if n is None:
            raise MigrationError("Port group %s not found on destination for VM %s %s"
                                 %(pgName, vm.name, label))
        v = nics[label]
        if isinstance(n, vim.dvs.DistributedVirtualPortgroup):
            vdsPgConn = vim.dvs.PortConnection()
            vdsPgConn.portgroupKey = n.key
            vdsPgConn.switchUuid = n.config.distributedVirtualSwitch.uuid
            v.backing = vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo()
            v.backing.port = vdsPgConn
        else:
            v.backing = vim.vm.device.VirtualEthernetCard.NetworkBackingInfo()
            v.backing.network = n
            v.backing.deviceName = n.name

        virdev = vim.vm.device.VirtualDeviceSpec()
        virdev.device = v
        virdev.operation = vim.vm.device.VirtualDeviceSpec.Operation.edit
        netdevs.append(virdev)
    return netdevs

def buildRelocateSpec(vm, dest, plan, service=None, placeInDatacenter=False):
    '''
    service - vim.ServiceLocator of the destination vcenter for cross vcenter
              moves
    placeInDatacenter - the destination datacenter differs from the current
                        one, so a folder must be part of the spec
    '''
    datastore = dest.getDatastore(plan.datastore)
    if datastore is None:
        raise MigrationError("Datastore %s not found on destination host %s"
                             %(plan.datastore, dest.host.name))
    relocSpec = vim.vm.RelocateSpec()
    relocSpec.host = dest.host
    relocSpec.pool = dest.getResourcePool()
    relocSpec.datastore = datastore
    relocSpec.deviceChange = setupNetworks(vm, dest, plan)
    if service is not None:
        relocSpec.service = service
    if service is not None or placeInDatacenter:
        relocSpec.folder = dest.getFolder(None)
    return relocSpec

def checkRelocate(checker, vm, dest, spec, crossVc=False):
    """
    vCenter's simulate only mode, returns the list of warnings and raises
    MigrationError on errors.  The checker belongs to the source vcenter, so
    for a cross vcenter move the destination host only travels in spec.
    """
    host = None if crossVc else dest.host
    results = waitForTask(checker.CheckRelocate_Task(vm=vm, host=host, spec=spec)) or []
    errors = []
    warnings = []
    for r in results:
        errors.extend([e.msg for e in r.error or []])
        warnings.extend([w.msg for w in r.warning or []])
    if errors:
        raise MigrationError("Relocate check failed for VM %s: %s" %(vm.name, "; ".join(errors)))
    return warnings

def moveToFolder(vm, dest, plan, logger, uuid=None):
    if plan.folder is None:
        return False
    folder = dest.getFolder(plan.folder)
    if folder is None:
        raise MigrationError("Folder %s not found in datacenter %s"
                             %(plan.folder, dest.datacenter.name))
    if uuid:
        # the source reference is gone, look the VM up on the destination
        vm = dest.inv.searchIndex.FindByUuid(None, uuid, True, True)
        if vm is None:
            raise MigrationError("VM %s not found on destination after migration" %uuid)
    if vm.parent == folder:
        return False
    logger.info("Moving VM %s into folder %s" %(vm.name, plan.folder))
    waitForTask(folder.MoveIntoFolder_Task([vm]))
    return True

def migrateVm(vm, dest, plan, config, logger, checker=None, service=None,
              placeInDatacenter=False):
    '''
    Migrate one VM according to plan.  Returns True when the VM was
    migrated, False when only vCenter's relocate check ran.
    '''
    try:
        spec = buildRelocateSpec(vm, dest, plan, service=service,
                                 placeInDatacenter=placeInDatacenter)
        if config.dryRun:
            logger.info("Dry run: checking relocation of VM %s to host %s"
                        %(vm.name, dest.host.name))
            for w in checkRelocate(checker, vm, dest, spec, crossVc=service is not None):
                logger.warn("VM %s: %s" %(vm.name, w))
            if plan.folder:
                logger.info("Dry run: VM %s would be moved into folder %s" %(vm.name, plan.folder))
            return False

        uuid = vm.config.instanceUuid if service is not None else None
        logger.info("Initiating migration of VM %s to host %s datastore %s"
                    %(vm.name, dest.host.name, plan.datastore))
        waitForTask(vm.RelocateVM_Task(spec=spec,
                                       priority=vim.VirtualMachine.MovePriority.highPriority))
        logger.info("Migration of VM %s completed" %plan.vm)
    except vmodl.MethodFault as e:
        raise MigrationError(e.msg)

    # the VM already runs on the destination host
    try:
        moveToFolder(vm, dest, plan, logger, uuid=uuid)
    except (MigrationError, vmodl.MethodFault) as e:
        logger.warn("VM %s migrated but not moved into folder %s: %s"
                    %(plan.vm, plan.folder, getattr(e, "msg", e)))
    return True
