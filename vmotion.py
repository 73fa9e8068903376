#!/usr/bin/env python3
# Disclaimer: This product is not supported by VMware.
# License: https://github.com/vmware/pyvmomi-community-samples/blob/master/LICENSE
'''
   Live migrate the VMs of one ESXi host to another host managed by the same
   vCenter, moving their vNIC from a distributed switch port group to the
   standard switch port group with the same name on the destination host.
   Only VMs with a single vNIC are migrated.
'''
import argparse
import getpass
import sys
from migrateutils.logger import Logger
from migrateutils.vcconnect import VcConnect
from migrateutils.planner import PlannerConfig, FatalError, GB, VSS
from migrateutils.runner import migrateHost

def parseParameters(argv=None):

    parser = argparse.ArgumentParser(
            description='Migrate VMs between hosts of one vCenter onto a standard switch')
    parser.add_argument('-s', '--sourcevc',
            required = True,
            action = 'store',
            help = 'Vcenter server name or IP')
    parser.add_argument('-u', '--user',
            required=True,
            action='store',
            help='User name to connect to vcenter')
    parser.add_argument('-p', '--password',
            required=False,
            action='store',
            help = 'Password for connection to vcenter, prompted if not provided')
    parser.add_argument('--srchost',
            required=True,
            help="ESXi host to migrate VMs from")
    parser.add_argument('--desthost',
            required=True,
            help="ESXi host to migrate VMs to")
    parser.add_argument('--switch',
            default="vSwitch0",
            help="Standard switch on the destination host, default: vSwitch0")
    parser.add_argument("-n", '--name',
            required = False,
            action='store',
            help = "Only migrate the VM with this name")
    parser.add_argument('--dryrun',
            action="store_true",
            help="Only run the vCenter relocation check, do not migrate")
    parser.add_argument('--delay',
            default=0, type=int,
            help="Seconds to wait between migrations, default: 0")
    parser.add_argument('--margin',
            default=100, type=int,
            help="GB that must remain free on the destination datastore, default: 100")
    parser.add_argument('--logfile',
            default="vmotion.log",
            help="Log file, default: vmotion.log")
    parser.add_argument('--verifySSL',
            action="store_true",
            help="Validate the vCenter certificate")

    args = parser.parse_args(argv)
    return args

def buildConfig(args):
    return PlannerConfig(singleNicOnly=True,
                         dryRun=args.dryrun,
                         vmName=args.name,
                         delay=args.delay,
                         freeSpaceMargin=args.margin * GB)

def main():
    print("This script is not supported by VMware.  Use at your own risk")
    args = parseParameters()
    logger = Logger(args.logfile)
    if not args.password:
        args.password = getpass.getpass("vCenter %s password: " %args.sourcevc)
    config = buildConfig(args)

    vc = VcConnect(args.sourcevc, args.user, args.password, logger, verify=args.verifySSL)
    try:
        summary = migrateHost(vc, vc, args.srchost, args.desthost, args.switch, VSS,
                              config, logger)
    except FatalError as e:
        logger.error(str(e))
        return 1
    logger.close()
    if summary["failed"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
