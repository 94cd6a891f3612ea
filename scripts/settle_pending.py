#!/usr/bin/env python3
"""Settle pending bets against finished fixtures, once or in a loop."""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse
import asyncio
from datetime import datetime

from app.config import COMPETITIONS
from app.db import Bet, SessionLocal, init_db
from app.services.football_api import get_football_api
from app.services.settlement import settle_competition


async def check_and_settle(contexts):
    """Run settlement for each context. Returns True when nothing is pending."""
    print(f"\n[{datetime.now().strftime('%H:%M:%S')}] Checking for finished fixtures...")

    db = SessionLocal()
    try:
        pending = db.query(Bet).filter(Bet.status == "pending").count()
        if not pending:
            print("No pending bets!")
            return True

        print(f"Pending: {pending} bets")
        api = get_football_api()
        for context in contexts:
            result = await settle_competition(db, api, context)
            print(f"  {context}: {result['message']}")

        return db.query(Bet).filter(Bet.status == "pending").count() == 0
    finally:
        db.close()


async def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("contexts", nargs="*", help=f"any of: {', '.join(COMPETITIONS)}")
    parser.add_argument("--loop", type=int, default=0, help="re-check every N minutes until nothing is pending")
    args = parser.parse_args()

    init_db()
    contexts = args.contexts or list(COMPETITIONS)
    unknown = [c for c in contexts if c not in COMPETITIONS]
    if unknown:
        parser.error(f"unknown context(s): {', '.join(unknown)}")
    while True:
        done = await check_and_settle(contexts)
        if done or not args.loop:
            break
        print(f"Waiting {args.loop} minutes...")
        await asyncio.sleep(args.loop * 60)


if __name__ == "__main__":
    asyncio.run(main())
