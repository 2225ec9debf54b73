"""Seed the configured storage with synthetic fulfillments.

Records are created through the repository and walked through the real
checkpoints, so every seeded record is in a state the workflow can reach.

Usage:
    python -m scripts.seed_data [--count 12]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import sys

# Add src to path so handoff imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from handoff.core.config import Settings
from handoff.repositories.fulfillment_repository import FulfillmentRepository
from handoff.services.storage import build_storage

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# Re-use factories
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from tests.factories.data_factories import build_fulfillment_input


async def seed_storage(count: int) -> None:
    """Generate fulfillments spread across pending, in-transit and completed."""
    settings = Settings()
    storage = build_storage(settings)
    repository = FulfillmentRepository(
        storage,
        storage_key=settings.storage_key,
        allow_unchecked_advance=settings.allow_unchecked_advance,
    )
    logger.info("Seeding %d fulfillments into %s storage...", count, storage.engine)

    tally = {"pending": 0, "in-transit": 0, "completed": 0}
    for _ in range(count):
        fulfillment, secret = await repository.create(**build_fulfillment_input())
        target = random.choice(list(tally))

        if target != "pending":
            repository.confirm_drop_off(fulfillment.id)
        if target == "completed":
            await repository.confirm_collection(fulfillment.id, secret)
        else:
            # Collection codes are only ever shown once; print them for manual testing.
            logger.info("%s (%s): collection code %s", fulfillment.id, target, secret)
        tally[target] += 1

    logger.info(
        "Seed complete! pending=%d in-transit=%d completed=%d",
        tally["pending"],
        tally["in-transit"],
        tally["completed"],
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed Handoff storage with synthetic data")
    parser.add_argument("--count", type=int, default=12, help="number of fulfillments")
    args = parser.parse_args()
    asyncio.run(seed_storage(args.count))


if __name__ == "__main__":
    main()
