"""
Apply a driver priority seed from a JSON file.

The file names a version and an ordered list of name fragments:

    {"version": "2024-Q1", "names": ["Preecha", "Jaidee"], "match": "substring"}

Matching drivers are moved to the front of the rotation in that order. A
version is applied once; running the script again with the same file is a
no-op.

Usage:
    python -m motorpool.seed_queue_priority path/to/seed.json
"""

import asyncio
import json
import sys
from pathlib import Path

from motorpool.app.db.session import AsyncSessionLocal
from motorpool.app.services import driver_queue
from motorpool.app.services.audit import log_event, AuditAction


async def seed_queue_priority(path: Path) -> bool:
    seed = json.loads(path.read_text(encoding="utf-8"))
    version = seed["version"]
    names = seed["names"]
    match = seed.get("match", "substring")
    
    async with AsyncSessionLocal() as db:
        print(f"🌱 Applying queue seed {version} ({len(names)} name(s), match={match})...")
        
        applied, drivers = await driver_queue.seed_priority(db, version, names, match)
        if not applied:
            print(f"ℹ️  Seed {version} already applied, skipping")
            return False
        
        await log_event(
            db=db,
            action=AuditAction.QUEUE_SEEDED,
            metadata={"version": version, "names": names, "match": match, "source": str(path)}
        )
        await db.commit()
        
        print(f"\n🎉 Seed {version} applied. Rotation is now:")
        for driver in drivers:
            print(f"  {driver.queue_order:>3}. {driver.full_name}")
        return True


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    asyncio.run(seed_queue_priority(Path(sys.argv[1])))
