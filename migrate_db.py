#!/usr/bin/env python
"""
Apply the entitlement schema migrations

    python migrate_db.py                 upgrade to head
    python migrate_db.py downgrade -1    step back one revision
    python migrate_db.py check           exit 1 unless at head
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from review_entitlements.db.migrations import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
