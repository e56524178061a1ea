"""
Command line entry point.

Usage:
    vm-creator --datacenter DC1 --cluster CL1 --template /DC1/vm/Templates/ol7 \
        --vm-name db01 --datastore DS1 --network prod-dvpg --folder Databases

    vm-creator --datacenter DC1 --inspect-vm db01

Connection settings come from VMWARE_URL, VMWARE_USERNAME, VMWARE_PASSWORD
and VCENTER_INSECURE, in the environment or a .env file.
"""

import logging
import sys
import time
from typing import Optional

import click

from vm_creator import __version__
from vm_creator.cancel import CancelToken
from vm_creator.config import load_settings
from vm_creator.connection import connect_vcenter, disconnect_vcenter
from vm_creator.creator import CloneParameters, VMCreator
from vm_creator.errors import CloneCancelledError, ConfigurationError, VMCreatorError
from vm_creator.utils import _normalize_unicode, _safe_to_stdout, format_elapsed

logger = logging.getLogger("vm_creator")

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _echo(line: str) -> None:
    click.echo(_safe_to_stdout(_normalize_unicode(line)))


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--datacenter", required=True, help="Target datacenter (name or inventory path).")
@click.option("--cluster", help="Target cluster.")
@click.option("--template", help="VM template name or inventory path, e.g. Templates/T1 (under the datacenter's "
                                 "vm folder) or /DC/vm/Templates/T1. A path avoids a slow search of every VM.")
@click.option("--vm-name", help="Name of the new virtual machine.")
@click.option("--datastore", help="Target datastore.")
@click.option("--network", help="Distributed port group the new VM's adapters are moved to.")
@click.option("--resource-pool", default="", help="Target resource pool; defaults to the cluster's root pool.")
@click.option("--folder", help="Destination VM folder, relative to the datacenter's vm folder.")
@click.option("--inspect-vm", default="", help="Only print the network configuration of this existing VM.")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Give up waiting after this many seconds. The clone task keeps running in vCenter.")
@click.option("--env-file", type=click.Path(dir_okay=False), default=".env", show_default=True,
              help="Optional .env file with the vCenter connection settings.")
@click.version_option(__version__, prog_name="vm-creator")
def main(datacenter: str, cluster: Optional[str], template: Optional[str], vm_name: Optional[str],
         datastore: Optional[str], network: Optional[str], resource_pool: str, folder: Optional[str],
         inspect_vm: str, timeout: Optional[float], env_file: str):
    """Clone a VM from a template onto a distributed port group."""
    overall_start = time.monotonic()
    try:
        settings = load_settings(env_file)
    except ConfigurationError as e:
        _configure_logging("INFO")
        logger.error(f"✗ {e}")
        sys.exit(EXIT_FAILURE)
    _configure_logging(settings.log_level)
    logger.info("Starting vm-creator...")

    if not inspect_vm:
        missing = [flag for flag, value in (
            ("--cluster", cluster), ("--template", template), ("--vm-name", vm_name),
            ("--datastore", datastore), ("--network", network), ("--folder", folder),
        ) if not value]
        if missing:
            raise click.UsageError(f"Missing option(s) for cloning: {', '.join(missing)}")

    si = None
    try:
        settings.validate_connection()
        token = CancelToken(timeout=timeout)
        si = connect_vcenter(settings)
        creator = VMCreator(si, settings, token)

        if inspect_vm:
            for line in creator.run_inspect(datacenter, inspect_vm):
                _echo(line)
            logger.info(f"Inspection finished in {format_elapsed(time.monotonic() - overall_start)}.")
            return

        params = CloneParameters(
            datacenter=datacenter,
            cluster=cluster,
            template=template,
            vm_name=vm_name,
            datastore=datastore,
            network=network,
            folder=folder,
            resource_pool=resource_pool or None,
        )
        summary = creator.run_clone(params)
    except KeyboardInterrupt:
        logger.error("Interrupted; any clone task already submitted keeps running in vCenter.")
        sys.exit(EXIT_CANCELLED)
    except CloneCancelledError as e:
        logger.error(f"✗ {e}")
        sys.exit(EXIT_CANCELLED)
    except VMCreatorError as e:
        logger.error(f"✗ {e}")
        if e.platform_detail and e.platform_detail not in e.message:
            logger.error(f"  Reason from vCenter: {e.platform_detail}")
        sys.exit(EXIT_FAILURE)
    finally:
        disconnect_vcenter(si)

    for step, seconds in summary.timings.items():
        logger.debug(f"  {step}: {format_elapsed(seconds)}")

    outcome = summary.outcome
    if not outcome.ok:
        logger.error(f"✗ Clone failed at step '{outcome.step}': {outcome.message}")
        if outcome.platform_detail and outcome.platform_detail not in outcome.message:
            logger.error(f"  Reason from vCenter: {outcome.platform_detail}")
        sys.exit(EXIT_FAILURE)

    _echo(f"{outcome.new_vm.name} {outcome.new_vm.id}")
    logger.info(f"Script finished successfully in {format_elapsed(time.monotonic() - overall_start)}.")


if __name__ == "__main__":
    main()
