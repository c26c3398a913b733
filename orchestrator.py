#!/usr/bin/env python3
"""Run one goal through the plan-and-execute orchestrator and print the result."""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


async def main(args) -> int:
    from src.orchestrator import Orchestrator, create_state_store
    from src.registry import (
        AgentRegistry,
        create_persistent_registry,
        create_registry_store,
        load_cards_file,
    )
    from src.utils.config import get_orchestrator_config
    from src.utils.input_validation import ValidationError
    from src.utils.llm import create_azure_openai_chat

    config = get_orchestrator_config()
    if args.max_iterations is not None:
        config.max_replan_iterations = args.max_iterations

    persistent = await create_persistent_registry(create_registry_store(), AgentRegistry())
    registry = persistent.registry
    if args.agents:
        for card in load_cards_file(args.agents):
            registry.register_agent(card)

    orchestrator = Orchestrator(
        registry,
        create_azure_openai_chat(),
        config=config,
        state_store=create_state_store(config),
        session_id=args.session_id,
    )
    try:
        if args.resume:
            if not await orchestrator.load_state(args.session_id):
                print(f"No saved state for session {args.session_id}", file=sys.stderr)
                return 1
            result = await orchestrator.resume()
        else:
            result = await orchestrator.execute(args.goal)
    except ValidationError as e:
        print(f"Invalid goal: {e}", file=sys.stderr)
        return 2
    finally:
        await orchestrator.close()
        await persistent.close()

    print(result.model_dump_json(by_alias=True, indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Plan-and-execute multi-agent orchestrator")
    parser.add_argument("goal", nargs="?", default="",
                        help="Goal to decompose and execute")
    parser.add_argument("--agents", type=str, default=None,
                        help="JSON file with capability cards to register before running")
    parser.add_argument("--max-iterations", type=int, default=None,
                        help="Maximum execute/re-plan iterations (default from config)")
    parser.add_argument("--session-id", type=str, default=None,
                        help="Session id for checkpoints")
    parser.add_argument("--resume", action="store_true",
                        help="Resume the checkpointed plan of --session-id")

    args = parser.parse_args()
    if args.resume and not args.session_id:
        parser.error("--resume requires --session-id")
    if not args.resume and not args.goal:
        parser.error("a goal is required unless --resume is given")

    sys.exit(asyncio.run(main(args)))
