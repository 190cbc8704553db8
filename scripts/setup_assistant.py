#!/usr/bin/env python3
"""Create or update the backend assistant definition with the current tool set."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from copilot.infra.config import config
from copilot.services.assistant_manager import get_assistant_manager
from copilot.services.tool_registry import get_default_registry


async def setup_assistant() -> str:
    manager = get_assistant_manager()
    assistant_id = await manager.setup_agent_definition()

    print(f"✅ Assistant ready: {assistant_id}")
    if assistant_id != config.OPENAI_ASSISTANT_ID:
        print(f"   Add OPENAI_ASSISTANT_ID={assistant_id} to your environment variables")
    return assistant_id


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--print-schema",
        action="store_true",
        help="Print the function schema sent to the assistant and exit",
    )
    args = parser.parse_args()

    if args.print_schema:
        print(json.dumps(get_default_registry().schema(), indent=2))
        return 0

    if not config.OPENAI_API_KEY:
        print("❌ OPENAI_API_KEY is not set", file=sys.stderr)
        return 1

    asyncio.run(setup_assistant())
    return 0


if __name__ == "__main__":
    sys.exit(main())
