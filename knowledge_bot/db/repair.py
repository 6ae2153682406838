"""
Maintenance commands for fixing account data by hand.

Usage:
  python -m knowledge_bot.db.repair assign-company --email user@example.com --company "Acme"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from knowledge_bot.core.logging import configure_logging
from knowledge_bot.db.session import session_scope
from knowledge_bot.services.accounts import AccountService
from knowledge_bot.services.base import ServiceError

logger = logging.getLogger(__name__)


async def assign_company(email: str, company_name: str) -> None:
    """Attach an existing user to a company, creating the company when it does not exist."""
    async with session_scope() as session:
        user = await AccountService(session).assign_company(email, company_name)
        logger.info("User %s now belongs to company %s", user.email, user.company_id)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="knowledge_bot.db.repair", description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command", required=True)
    assign = sub.add_parser("assign-company", help="Assign a user to a company by name")
    assign.add_argument("--email", required=True, help="Email of the user to repair")
    assign.add_argument("--company", required=True, help="Company name; created when missing")
    return parser


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    try:
        if args.command == "assign-company":
            asyncio.run(assign_company(args.email, args.company))
    except ServiceError as exc:
        logger.error("Repair failed: %s", exc.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
