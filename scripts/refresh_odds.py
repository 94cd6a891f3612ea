#!/usr/bin/env python3
"""
Refresh the odds cache from API-Football.

This script:
1. Fetches upcoming fixtures and odds for each competition context
2. Stores them in the odds cache rows (keeping the previous snapshot)
3. Shows what the cache holds afterwards

Usage: python scripts/refresh_odds.py [leagues|coparey|selecciones ...]
"""

import asyncio
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import COMPETITIONS
from app.db import SessionLocal, init_db
from app.errors import JambolError
from app.services.football_api import get_football_api
from app.services.odds_cache import read_snapshot, refresh_competition


async def refresh_all(db, contexts):
    """Refresh each context; a failing context does not stop the others."""
    api = get_football_api()
    for context in contexts:
        try:
            result = await refresh_competition(db, api, context)
            print(f"{context}: {result['message']} ({result['fixtures_found']} fixtures)")
        except JambolError as e:
            print(f"{context}: ERROR {e.message}")


def show_cache(db, contexts):
    for context in contexts:
        snapshot = read_snapshot(db, context)
        entries = snapshot["data"].get("response", [])
        with_odds = sum(1 for e in entries if e.get("bookmakers"))
        print(f"  {context}: {len(entries)} fixtures, {with_odds} with odds, updated {snapshot['last_updated']}")


async def main():
    contexts = sys.argv[1:] or list(COMPETITIONS)
    unknown = [c for c in contexts if c not in COMPETITIONS]
    if unknown:
        print(f"Unknown context(s): {', '.join(unknown)}")
        sys.exit(1)

    init_db()
    db = SessionLocal()
    try:
        await refresh_all(db, contexts)
        print("\nCache contents:")
        show_cache(db, contexts)
    finally:
        db.close()


if __name__ == "__main__":
    asyncio.run(main())
