#!/usr/bin/env python3
"""Delete expired one-time passcodes.

Expired records are already ignored and removed lazily when the same
email asks again; this sweeps the ones nobody comes back for.

Usage:
    python scripts/purge_otps.py
"""

import asyncio

from storefront.application.otp_service import OtpService
from storefront.infrastructure.database import async_session_factory, engine


async def main() -> None:
    """Main entry point."""
    try:
        async with async_session_factory() as session:
            removed = await OtpService(session).purge_expired()
        print(f"Removed {removed} expired passcodes")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
