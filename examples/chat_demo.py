"""Minimal demonstration of the turn engine from the command line."""

import asyncio

from convo_agent.api.service import build_agent, split_message


async def main() -> None:
    agent = build_agent()
    question = "What channels does this server have?"
    try:
        reply = await agent.process_message("demo-user", question)
    finally:
        await agent.aclose()
    print("User:", question)
    for chunk in split_message(reply):
        print("Agent:", chunk)


if __name__ == "__main__":
    asyncio.run(main())
