#!/usr/bin/env python3
"""Conversation assistant CLI."""

import argparse
import asyncio
import logging
import sys
import uuid
from config.settings import Settings
from schemas.responses import MessageRequest
from orchestrator import ConversationOrchestrator


def print_response(response, verbose: bool = False):
    print("\n" + "="*60)
    print(f"ASSISTANT ({response.provider_id})")
    print("="*60 + "\n")
    print(response.content or f"[{response.reason}]")
    if verbose:
        print(f"\nintent={response.intent} confidence={response.confidence:.2f} "
              f"time={response.processing_time_ms:.0f}ms")
        print(f"metadata={response.metadata.model_dump()}")
    print()


async def run(args, settings: Settings) -> int:
    orchestrator = ConversationOrchestrator.from_settings(settings)
    await orchestrator.start()

    try:
        if args.message:
            response = await orchestrator.process_message(MessageRequest(
                user_id=args.user_id,
                phone=args.phone,
                message_id=str(uuid.uuid4()),
                text=args.message,
            ))
            print_response(response, args.verbose)
            return 0

        print("Interactive mode. Type 'quit' to exit, 'status' for provider status.")
        while True:
            try:
                text = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            if text.strip().lower() in ("quit", "exit"):
                break
            if text.strip().lower() == "status":
                print(orchestrator.provider_pool.get_status())
                continue

            response = await orchestrator.process_message(MessageRequest(
                user_id=args.user_id,
                phone=args.phone,
                message_id=str(uuid.uuid4()),
                text=text,
            ))
            print_response(response, args.verbose)
        return 0
    finally:
        await orchestrator.stop()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Conversation Assistant - AI chat replies with memory and personality"
    )
    parser.add_argument(
        "--user-id",
        "-u",
        type=str,
        default="demo",
        help="Business account id (default: demo)"
    )
    parser.add_argument(
        "--phone",
        "-p",
        type=str,
        default="0000000000",
        help="Channel address of the conversation"
    )
    parser.add_argument(
        "--message",
        "-m",
        type=str,
        help="Message to process (interactive mode if omitted)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        help="Path to the SQLite database"
    )
    parser.add_argument(
        "--profiles",
        type=str,
        help="Path to a personality profiles YAML file"
    )
    parser.add_argument(
        "--knowledge-dir",
        type=str,
        help="Directory with business data CSV sheets"
    )
    parser.add_argument(
        "--no-ai-nlu",
        action="store_true",
        help="Use rule-based intent and emotion detection only"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings = Settings(
        db_path=args.db_path,
        profiles_path=args.profiles,
        knowledge_dir=args.knowledge_dir,
        ai_classification_enabled=False if args.no_ai_nlu else None,
        verbose=args.verbose,
    )

    try:
        sys.exit(asyncio.run(run(args, settings)))
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        print(f"Error processing message: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
