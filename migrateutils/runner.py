#!/usr/bin/env python3
'''
Sequential driver: validate the topology, then plan and migrate the VMs of
a source host one at a time.
'''
import collections
import time
from pyVmomi import vim
from pyVmomi import vmodl
from migrateutils.planner import FatalError, planVm, validateEnvironment
from migrateutils.inventory import (describeVm, describeEnvironment, getVmsOnHost,
                                    buildFolderIndex)
from migrateutils.relocate import MigrationError, migrateVm


def formatNetworks(networks):
    return ", ".join(["%s -> %s" %(label, pg) for label, pg in networks])

def migrateHost(src, dst, srcHost, destHost, switch, switchType, config, logger):
    '''
    src, dst - VcConnect of the source and destination vcenter, may be the
               same object
    Returns a Counter with migrated, simulated, skipped and failed VMs.
    Raises FatalError when the run cannot start.
    '''
    srcHostObj = src.getObject([vim.HostSystem], srcHost)
    if srcHostObj is None:
        raise FatalError("Source host %s not found in vcenter %s" %(srcHost, src.server))

    logger.info("Finding VMs on host %s" %srcHost)
    summary = collections.Counter(migrated=0, simulated=0, skipped=0, failed=0)
    vms = []
    descriptors = []
    for vm in getVmsOnHost(srcHostObj, config.vmName):
        try:
            desc = describeVm(vm)
        except (vmodl.fault.ManagedObjectNotFound, AttributeError) as e:
            # removed or reconfigured while the host was being read
            logger.warn("Skipping VM %s: could not read its configuration: %s"
                        %(vm, getattr(e, "msg", e)))
            summary["skipped"] += 1
            continue
        vms.append(vm)
        descriptors.append(desc)

    dest, env = describeEnvironment(dst.inv, sourceVc=src.getInstanceUuid(),
                                    destVc=dst.getInstanceUuid(), destHost=destHost,
                                    switch=switch, switchType=switchType)
    folderIndexes = []
    if env.crossVc:
        logger.info("Checking VM folder names in vcenters %s and %s" %(src.server, dst.server))
        folderIndexes = [buildFolderIndex(src.inv, src.server),
                         buildFolderIndex(dst.inv, dst.server)]
    validateEnvironment(env, descriptors, folderIndexes, vmFilter=config.vmName)
    logger.info("Destination host %s found, %d VM(s) to process" %(destHost, len(vms)))

    service = dst.getServiceLocator() if env.crossVc else None
    checker = src.inv.vmProvisioningChecker
    for i, (vm, desc) in enumerate(zip(vms, descriptors)):
        plan = planVm(desc, env, config)
        if not plan.eligible:
            logger.warn("Skipping VM %s: %s" %(desc.name, plan.reason))
            summary["skipped"] += 1
            continue
        if desc.folder and plan.folder is None:
            logger.warn("Folder %s not found in datacenter %s, VM %s stays at the datacenter root"
                        %(desc.folder, env.datacenter, desc.name))
        logger.info("VM %s: datastore %s, networks [%s], folder %s"
                    %(desc.name, plan.datastore, formatNetworks(plan.networks),
                      plan.folder or "/"))
        try:
            migrated = migrateVm(vm, dest, plan, config, logger, checker=checker,
                                 service=service,
                                 placeInDatacenter=desc.datacenter != env.datacenter)
        except MigrationError as e:
            logger.warn("Migration of VM %s failed: %s" %(desc.name, e))
            summary["failed"] += 1
            continue

        if not migrated:
            summary["simulated"] += 1
            continue
        summary["migrated"] += 1
        if config.delay and i < len(vms) - 1:
            logger.info("Waiting %d seconds before next migration" %config.delay)
            time.sleep(config.delay)

    logger.info("Done: %(migrated)d migrated, %(simulated)d checked (dry run), "
                "%(skipped)d skipped, %(failed)d failed" %summary)
    return summary
