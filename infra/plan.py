"""
Runs the orchestrator against the in-memory provider and
prints the resource manifest as JSON. No AWS calls are made unless
`--resolve-image` is given.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from config.settings import settings
from orchestration.orchestrator import ProvisioningOrchestrator
from provisioning.errors import ProvisioningError
from provisioning.images import SsmDynamicReference, SsmImageLookup
from provisioning.provider import InMemoryProvider
from schemas.parameters import StackParameters

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for a local synthesis."""
    parser = argparse.ArgumentParser(description="Synthesize the multi-tier resource graph")
    parser.add_argument("--base-cidr", help="Network range (default from BASE_CIDR)")
    parser.add_argument("--az-count", type=int, help="Availability zones")
    parser.add_argument("--compute-fleet-size", type=int, help="Compute instances")
    parser.add_argument("--db-fleet-size", type=int, help="Database instances")
    parser.add_argument("--trusted-repo-ref", help="Subject condition for the CI role")
    parser.add_argument("--no-cycle", action="store_true", help="Fail instead of cycling subnets")
    parser.add_argument("--max-workers", type=int, help="Concurrent graph nodes")
    parser.add_argument("--resolve-image", action="store_true", help="Look the image id up in SSM now")
    parser.add_argument("--output", help="Write the manifest here instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parameters = StackParameters.from_settings(
        settings,
        overrides={
            "baseCidr": args.base_cidr,
            "azCount": args.az_count,
            "computeFleetSize": args.compute_fleet_size,
            "dbFleetSize": args.db_fleet_size,
            "trustedRepoRef": args.trusted_repo_ref,
        },
    )

    orchestrator = ProvisioningOrchestrator(
        InMemoryProvider(),
        image_lookup=SsmImageLookup() if args.resolve_image else SsmDynamicReference(),
        parameters=parameters,
        max_workers=args.max_workers,
        cycle_subnets=False if args.no_cycle else None,
    )

    try:
        result = orchestrator.synthesize()
    except ProvisioningError as e:
        logger.error("Synthesis failed: %s", e)
        return 1

    manifest = json.dumps(result.to_manifest(), indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(manifest)
        logger.info("Manifest written to %s", args.output)
    else:
        print(manifest)
    return 0


if __name__ == "__main__":
    sys.exit(main())
