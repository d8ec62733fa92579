# scripts/setup/provision_zone.py
"""
Bulk-create spots for a facility zone, or rebuild a facility's capacity.

Usage:
  python scripts/setup/provision_zone.py --facility 1 --zone "Level 1" --count 40
  python scripts/setup/provision_zone.py --facility 1 --zone Motos --count 10 --category Motorcycle
  python scripts/setup/provision_zone.py --facility 1 --reset --cars 80 --motorcycles 10 --vans 5
"""

import argparse
import asyncio
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from plaza_engine.database import SessionLocal, create_tables
from plaza_engine.errors import EngineError
from plaza_engine.models.spot import VehicleCategory
from plaza_engine.services import spot_registry


async def run(args) -> int:
    create_tables()
    db = SessionLocal()
    try:
        if args.reset:
            spots = await spot_registry.reset_capacity(db, args.facility, {
                VehicleCategory.CAR: args.cars,
                VehicleCategory.MOTORCYCLE: args.motorcycles,
                VehicleCategory.VAN: args.vans,
            })
            print(f"✅ Facility {args.facility} rebuilt with {len(spots)} spots")
        else:
            if not args.zone:
                print("❌ --zone is required unless --reset is given")
                return 2
            spots = await spot_registry.provision_zone(
                db, args.facility, args.zone, args.count, VehicleCategory(args.category),
            )
            print(f"✅ Zone '{args.zone}': spots {spots[0].spot_number}..{spots[-1].spot_number}")
        print(f"📊 Facility {args.facility}: {spot_registry.status_summary(db, args.facility)}")
    except EngineError as e:
        print(f"❌ {e.code}: {e.message}")
        return 1
    finally:
        db.close()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Provision parking spots")
    parser.add_argument("--facility", type=int, required=True)
    parser.add_argument("--zone")
    parser.add_argument("--count", type=int, default=10)
    parser.add_argument("--category", default=VehicleCategory.CAR.value,
                        choices=[c.value for c in VehicleCategory])
    parser.add_argument("--reset", action="store_true", help="drop and recreate every spot")
    parser.add_argument("--cars", type=int, default=0)
    parser.add_argument("--motorcycles", type=int, default=0)
    parser.add_argument("--vans", type=int, default=0)
    sys.exit(asyncio.run(run(parser.parse_args())))
