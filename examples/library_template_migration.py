#!/usr/bin/env python3
# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Example: template migration using the tmpl2vc library.

This example demonstrates:
- Building MigrationSettings in code instead of from CLI/config
- Running the interactive workflow on the console
- Mapping the result to an exit code

Usage:
    export TMPL2VC_PASSWORD='your-password'
    python library_template_migration.py vc-lab-a.example.com vc-lab-b.example.com
"""

import sys

from tmpl2vc import MigrationSettings, MigrationWorkflow, Placement
from tmpl2vc.cli.operator import ConsoleOperator
from tmpl2vc.core.logger import Log


def migrate_template(source: str, destination: str, user: str = "administrator@vsphere.local") -> int:
    logger = Log.setup(verbose=1)

    settings = MigrationSettings(
        placement=Placement(
            datacenter="DC1",
            cluster="Cluster-A",
            datastore="ssd-01",
            network="VM Network",
        ),
        source=source,
        destination=destination,
        vc_user=user,
        vc_insecure=True,  # Set False to verify SSL certificates
    )

    result = MigrationWorkflow(logger, settings, ConsoleOperator()).run()
    if result.partial_state:
        logger.error("Finish by hand: %s", result.partial_state)
    return int(result.exit_code)


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(migrate_template(sys.argv[1], sys.argv[2]))
