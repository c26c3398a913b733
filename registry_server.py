#!/usr/bin/env python3
"""Entry point for the agent registry server (MCP-style JSON-RPC over HTTP)."""

import argparse
import asyncio

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


async def main(args):
    from src.registry import (
        AgentRegistry,
        RegistryServer,
        create_persistent_registry,
        create_registry_store,
        load_cards_file,
    )
    from src.utils.logging import get_logger

    logger = get_logger("registry")

    persistent = await create_persistent_registry(create_registry_store(), AgentRegistry())
    if args.seed:
        for card in load_cards_file(args.seed):
            persistent.registry.register_agent(card)
        await persistent.save()

    server = RegistryServer(persistent.registry, persistent, host=args.host, port=args.port)
    runner = await server.start(monitor_health=not args.no_health_monitor)
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop(runner)
        await persistent.close()
        logger.info("registry_shutdown_complete", component="registry")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Agent Registry Server")
    parser.add_argument("--host", type=str, default="0.0.0.0",
                        help="Host to bind server (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8100,
                        help="Port to bind server (default: 8100)")
    parser.add_argument("--seed", type=str, default=None,
                        help="JSON file with capability cards to register at startup")
    parser.add_argument("--no-health-monitor", action="store_true",
                        help="Disable periodic health checks of registered agents")

    args = parser.parse_args()
    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        pass
