import argparse
import asyncio
import json
from typing import Any, Dict, List, Optional

from colorama import Fore, Style
from colorama import init as colorama_init
from tabulate import tabulate

from shared_pubsub.gateway.redis_streams import RedisStreamGateway
from shared_pubsub.settings import Settings, configure_logging


def _gateway(redis_url: Optional[str] = None) -> RedisStreamGateway:
    return RedisStreamGateway(redis_url=redis_url or Settings.from_env().redis_url)


# -------------------------
# Reusable formatting
# -------------------------
def color_for_pending(pending: int) -> str:
    if pending > 50:
        return Fore.RED + Style.BRIGHT
    if pending > 0:
        return Fore.YELLOW
    return Fore.GREEN


def colored(value: Any, color: str) -> str:
    return f"{color}{value}{Style.RESET_ALL}"


def _print_messages(messages: List[Dict[str, Any]]):
    for message in messages:
        print(f"ID: {message['id']}")
        print(json.dumps(message, indent=2, default=str))
        print("-" * 40)


async def bus_list_topics(redis_url: Optional[str] = None):
    gateway = _gateway(redis_url)
    try:
        rows = [
            [t["topic"], t["length"], t["subscriptions"]]
            for t in await gateway.list_topics()
        ]
        print(tabulate(rows, headers=["Topic", "Len", "Subscriptions"], tablefmt="github"))
    finally:
        await gateway.close()


async def bus_list_subscriptions(redis_url: Optional[str] = None):
    gateway = _gateway(redis_url)
    try:
        rows = [
            [
                s["subscription"],
                s["topic"],
                s["ack_deadline"],
                colored(s["pending"], color_for_pending(s["pending"])),
                s["dead_letter"] or "-",
                s["max_attempts"] or "-",
            ]
            for s in await gateway.list_subscriptions()
        ]
        print(
            tabulate(
                rows,
                headers=["Subscription", "Topic", "AckDeadline", "Pending", "DLQ", "MaxAttempts"],
                tablefmt="github",
            )
        )
    finally:
        await gateway.close()


async def bus_inspect_topic(topic: str, limit: int = 5, redis_url: Optional[str] = None):
    """Print the most recent messages of a topic."""
    gateway = _gateway(redis_url)
    try:
        messages = await gateway.read_topic(topic, limit=limit)
        if not messages:
            print(f"No entries in {topic}")
            return
        _print_messages(messages)
    finally:
        await gateway.close()


async def bus_inspect_dlq(topic: str, limit: int = 5, redis_url: Optional[str] = None):
    """Print dead-lettered messages of a topic."""
    gateway = _gateway(redis_url)
    try:
        messages = await gateway.read_dlq(topic, limit=limit)
        if not messages:
            print(colored("No DLQ entries", Fore.GREEN))
            return
        print(colored(f"{len(messages)} dead-lettered message(s)", Fore.RED + Style.BRIGHT))
        _print_messages(messages)
    finally:
        await gateway.close()


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        prog="shared-pubsub-monitor", description="Inspect topics and subscriptions."
    )
    parser.add_argument("--redis-url", default=None)
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("topics", help="list topics")
    commands.add_parser("subscriptions", help="list subscriptions")
    inspect = commands.add_parser("inspect", help="show recent messages of a topic")
    inspect.add_argument("topic")
    inspect.add_argument("--limit", type=int, default=5)
    dlq = commands.add_parser("dlq", help="show dead-lettered messages of a topic")
    dlq.add_argument("topic")
    dlq.add_argument("--limit", type=int, default=5)

    args = parser.parse_args(argv)
    configure_logging("WARNING")
    colorama_init()

    if args.command == "topics":
        coro = bus_list_topics(args.redis_url)
    elif args.command == "subscriptions":
        coro = bus_list_subscriptions(args.redis_url)
    elif args.command == "inspect":
        coro = bus_inspect_topic(args.topic, args.limit, args.redis_url)
    else:
        coro = bus_inspect_dlq(args.topic, args.limit, args.redis_url)
    asyncio.run(coro)


if __name__ == "__main__":
    main()
