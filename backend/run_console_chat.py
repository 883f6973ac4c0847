"""Console front-end for the survey chat API.

Drives the same session logic as the embedded widget against a running
backend (``WIDGET_API_BASE_URL``):
    python backend/run_console_chat.py --participant P-123 --top-benefit "Better accessibility"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).resolve().parent
sys.path.insert(0, str(backend_dir))

from survey_chat.config import settings
from survey_chat.widget.session import ChatWidgetSession, open_api_client

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with the survey assistant")
    parser.add_argument("--participant", default=None)
    parser.add_argument("--top-benefit", default=None)
    parser.add_argument("--top-risk", default=None)
    return parser.parse_args()


async def main() -> None:
    """Run one chat session until the assistant ends it or input closes."""
    args = _parse_args()

    async with open_api_client(settings) as http:
        session = ChatWidgetSession(
            http,
            participant_id=args.participant,
            top_benefit=args.top_benefit,
            top_risk=args.top_risk,
        )
        print(f"Connected to {settings.widget_api_base_url}. Ctrl-D to quit.")

        while not session.state.completed:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break

            turn = await session.submit(line)
            if turn is None:
                continue
            prefix = "error" if turn.is_error else "assistant"
            print(f"{prefix}> {turn.text}")

        if session.state.completed:
            print("Interview complete. You may return to the survey and press Next.")
        await session.drain()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")
