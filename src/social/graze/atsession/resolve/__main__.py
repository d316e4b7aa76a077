from typing import List
import argparse
import aiohttp
import asyncio
import logging

from social.graze.atsession.app.cli import configure_logging, configure_sentry
from social.graze.atsession.app.config import Settings
from social.graze.atsession.atproto.xrpc import XrpcTransport
from social.graze.atsession.resolve.handle import IdentityResolver

logger = logging.getLogger(__name__)


async def realMain() -> None:
    settings = Settings()

    parser = argparse.ArgumentParser(prog="resolve", description="Resolve handles")
    parser.add_argument("subject", nargs="+", help="The subject(s) to resolve.")
    parser.add_argument(
        "--plc-hostname",
        default=settings.plc_hostname,
        help="The PLC hostname to use for resolving did-method-plc DIDs.",
    )

    args = vars(parser.parse_args())

    configure_logging(settings)
    configure_sentry(settings)

    subjects: List[str] = args.get("subject", [])

    async with aiohttp.ClientSession() as session:
        transport = XrpcTransport(session, timeout=settings.resolution_timeout)
        resolver = IdentityResolver(
            transport, args.get("plc_hostname"), settings.resolution_timeout
        )
        for subject in subjects:
            result = await resolver.resolve_subject(subject)
            if result.succeeded:
                print(f"resolved_handle {result.result}")
            else:
                logger.error(
                    "Unable to resolve subject %s: %s", subject, result.error_detail
                )


def main() -> None:
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
