"""
Script to run one counter reconciliation sweep
"""

import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import build_engine, build_session_maker
from core.exceptions import ReconciliationError
from core.logging import setup_logging
from ingestion.reconciler import ReconciliationSweeper

logger = logging.getLogger(__name__)


async def reconcile() -> int:
    engine = build_engine()
    try:
        report = await ReconciliationSweeper(build_session_maker(engine)).sweep()
        print(json.dumps(report, indent=2))
        return 0
    except ReconciliationError as e:
        logger.error(f"Reconciliation failed: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(reconcile()))
