"""
Process one batch of the case fetch queue.

Usage:
    python scripts/process_fetch_queue.py
    python scripts/process_fetch_queue.py --batch-size 20 --delay-ms 1000
"""
import argparse
import asyncio
import json

from lawdesk.config import get_settings
from lawdesk.utils.logging import configure_structured_logging, generate_correlation_id, set_correlation_id
from lawdesk.workers.fetch_queue import process_batch


async def main(batch_size: int | None, delay_ms: int | None):
    configure_structured_logging(get_settings().log_level)
    set_correlation_id(generate_correlation_id())

    result = await process_batch(batch_size, delay_ms)
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Process one case fetch queue batch")
    parser.add_argument("--batch-size", type=int, default=None, help="Items per batch (default from settings)")
    parser.add_argument("--delay-ms", type=int, default=None, help="Delay between provider calls")
    args = parser.parse_args()
    asyncio.run(main(args.batch_size, args.delay_ms))
