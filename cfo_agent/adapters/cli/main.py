"""CLI JSON-lines adapter — reads a query from argv/stdin, prints EngineEvents as NDJSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from cfo_agent import EngineConfig, create_engine
from cfo_agent.engine.models import ChatRequest
from cfo_agent.engine.streaming import encode_frame


async def run_cli(
    text: str,
    conversation_id: str | None = None,
    entity_id: str | None = None,
    config: EngineConfig | None = None,
) -> None:
    config = config or EngineConfig.from_env()
    engine = create_engine(config)
    request = ChatRequest(
        message=text,
        conversation_id=conversation_id,
        entity_id=entity_id or config.default_entity_id,
        user_id="cli",
        org_id=config.mcp_org_id,
    )
    async for event in engine.handle(request):
        sys.stdout.write(encode_frame(event))
        sys.stdout.flush()


def _read_stdin() -> tuple[str, dict]:
    raw = sys.stdin.read().strip()
    if not raw:
        return "", {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return raw, {}
    if isinstance(data, dict):
        return data.get("message", ""), data
    return raw, {}


def main() -> None:
    parser = argparse.ArgumentParser(prog="cfo-agent-cli", description="Run one chat turn and print NDJSON events.")
    parser.add_argument("query", nargs="*", help="query text (read from stdin when omitted)")
    parser.add_argument("--conversation-id")
    parser.add_argument("--entity-id")
    args = parser.parse_args()

    extra: dict = {}
    if args.query:
        text = " ".join(args.query)
    else:
        text, extra = _read_stdin()
    if not text:
        print("Usage: cfo-agent-cli <query>  OR  echo '{\"message\":\"...\"}' | cfo-agent-cli", file=sys.stderr)
        sys.exit(1)

    config = EngineConfig.from_env()
    logging.basicConfig(level=config.log_level.upper(), stream=sys.stderr)

    asyncio.run(run_cli(
        text,
        conversation_id=args.conversation_id or extra.get("conversationId"),
        entity_id=args.entity_id or extra.get("entityId"),
        config=config,
    ))


if __name__ == "__main__":
    main()
