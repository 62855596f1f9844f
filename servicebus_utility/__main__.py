from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from .libs.config import get_settings, load_queue_config
from .libs.exceptions import ServiceBusUtilityError
from .libs.gateway import QueueGateway
from .libs.logging import get_logger, setup_logging
from .libs.mappers import to_view, to_views
from .libs.models import MessagePayload
from .libs.servicebus import QueueConnection

logger = get_logger("servicebus_utility")


def _print(result: Any) -> None:
    if hasattr(result, "model_dump"):
        result = result.model_dump(mode="json")
    elif isinstance(result, list):
        result = [r.model_dump(mode="json") if hasattr(r, "model_dump") else r for r in result]
    print(json.dumps(result, indent=2, default=str))


async def cmd_publish(gateway: QueueGateway, args: argparse.Namespace) -> None:
    if args.typed:
        await gateway.publish(MessagePayload(text=args.text, tags=args.tag or []))
    else:
        await gateway.publish_text(args.text)
    _print({"published": True})


async def cmd_receive(gateway: QueueGateway, args: argparse.Namespace) -> None:
    model = MessagePayload if args.typed else None
    if args.max is None:
        _print(to_view(await gateway.receive_one(model=model), not args.no_metadata))
    else:
        _print(to_views(await gateway.receive_many(args.max, model=model), not args.no_metadata))


async def cmd_peek(gateway: QueueGateway, args: argparse.Namespace) -> None:
    model = MessagePayload if args.typed else None
    if args.max is None:
        _print(to_view(await gateway.peek_one(args.start, model=model), not args.no_metadata))
    else:
        if args.start is None:
            raise SystemExit("peek --max requires --start")
        _print(to_views(await gateway.peek_many(args.max, args.start, model=model), not args.no_metadata))


async def _run_queue_command(args: argparse.Namespace) -> None:
    connection = QueueConnection.open(load_queue_config())
    async with connection:
        gateway = QueueGateway.from_connection(connection)
        await args.handler(gateway, args)


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run(
        "servicebus_utility.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = argparse.ArgumentParser(description="Service Bus queue utility")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")

    p_publish = sub.add_parser("publish", help="Send one message")
    p_publish.add_argument("text")
    p_publish.add_argument("--tag", action="append", help="Repeatable: tags for --typed messages")
    p_publish.add_argument("--typed", action="store_true", help="Send as a MessagePayload JSON object")
    p_publish.set_defaults(handler=cmd_publish)

    for name, handler, help_text in (
        ("receive", cmd_receive, "Receive and complete messages"),
        ("peek", cmd_peek, "View messages without removing them"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--max", type=int, help="Read a batch of up to this many messages")
        p.add_argument("--typed", action="store_true", help="Decode bodies as MessagePayload")
        p.add_argument("--no-metadata", action="store_true", help="Print bodies only")
        if name == "peek":
            p.add_argument("--start", type=int, help="Sequence number to start from")
        p.set_defaults(handler=handler)

    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_file)

    if args.cmd == "serve":
        cmd_serve(args)
        return 0

    try:
        asyncio.run(_run_queue_command(args))
    except ServiceBusUtilityError as exc:
        logger.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
