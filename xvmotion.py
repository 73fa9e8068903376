#!/usr/bin/env python3
# Disclaimer: This product is not supported by VMware.
# License: https://github.com/vmware/pyvmomi-community-samples/blob/master/LICENSE
'''
   Cross vCenter vMotion of the VMs on one ESXi host to a host managed by
   another vCenter.  vNICs are mapped by port group name onto the given
   destination switch (distributed or standard) and each VM is placed in the
   VM folder of the same name in the destination datacenter.  VM folder
   names must be unique per datacenter in both vCenters.
'''
import argparse
import getpass
import sys
from migrateutils.logger import Logger
from migrateutils.vcconnect import VcConnect
from migrateutils.planner import PlannerConfig, FatalError, GB, VDS, VSS
from migrateutils.runner import migrateHost

def parseParameters(argv=None):

    parser = argparse.ArgumentParser(
            description='Cross vCenter vMotion of the VMs on an ESXi host')
    parser.add_argument('-s', '--sourcevc',
            required = True,
            action = 'store',
            help = 'Source Vcenter server name or IP')
    parser.add_argument('-d', '--destvc',
            required=True,
            action='store',
            help="Destination VC server name or IP")
    parser.add_argument('-u', '--user',
            required=True,
            action='store',
            help='User name to connect to vcenter')
    parser.add_argument('-p', '--password',
            required=False,
            action='store',
            help = 'Password for connection to vcenter, prompted if not provided')
    parser.add_argument('--destuser',
            required=False,
            help='User for the destination vcenter, default: --user')
    parser.add_argument('--destpassword',
            required=False,
            help='Password for the destination vcenter, default: --password')
    parser.add_argument('--srchost',
            required=True,
            help="ESXi host to migrate VMs from")
    parser.add_argument('--desthost',
            required=True,
            help="ESXi host to migrate VMs to")
    parser.add_argument('--switch',
            required=True,
            help="Name of the destination switch")
    parser.add_argument('--switchtype',
            choices=[VDS, VSS], default=VDS,
            help="Destination switch type, default: vds")
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
            help="Validate the vCenter certificates")

    args = parser.parse_args(argv)
    if args.sourcevc == args.destvc:
        parser.error("Source and destination vcenter are the same, use vmotion.py")
    return args

def buildConfig(args):
    return PlannerConfig(singleNicOnly=False,
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
    destUser = args.destuser or args.user
    destPassword = args.destpassword
    if not destPassword:
        destPassword = args.password if not args.destuser else \
            getpass.getpass("vCenter %s password: " %args.destvc)
    config = buildConfig(args)

    src = VcConnect(args.sourcevc, args.user, args.password, logger, verify=args.verifySSL)
    dst = VcConnect(args.destvc, destUser, destPassword, logger, verify=args.verifySSL)
    try:
        summary = migrateHost(src, dst, args.srchost, args.desthost, args.switch,
                              args.switchtype, config, logger)
    except FatalError as e:
        logger.error(str(e))
        return 1
    logger.close()
    if summary["failed"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
