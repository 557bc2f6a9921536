#!/usr/bin/env python3
"""Recompute organization storage counters from evidence_files.

Usage:
    python scripts/recalculate_storage.py                       # every organization
    python scripts/recalculate_storage.py --organization-id ID  # one organization

Fixes counters that drifted because a decrement after an evidence delete failed.
Exits 0 on success, 1 on failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from impacttrace.db.session import SessionLocal
from impacttrace.models import Organization
from impacttrace.services.storage_service import recalculate_storage

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Recalculate evidence storage usage")
    parser.add_argument("--organization-id", type=uuid.UUID, help="Only this organization")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        if args.organization_id is not None:
            org_ids = [args.organization_id]
        else:
            org_ids = [org_id for (org_id,) in db.query(Organization.id).all()]
        for org_id in org_ids:
            total = recalculate_storage(db, org_id)
            if total is None:
                logger.error("Organization %s not found", org_id)
                return 1
            print(f"organization_id={org_id} storage_used_bytes={total}")
        return 0
    except Exception:
        logger.exception("Storage recalculation failed")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
