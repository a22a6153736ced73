"""
Order Engine demo runner

Submits a handful of orders against the mock venues and prints every status
event as it arrives, followed by a summary.

Usage:
    python -m order_engine.main
    python -m order_engine.main --orders 5 --token-in SOL --token-out USDC --amount 10
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from .config import EngineConfig, configure_logging
from .engine import OrderEngine, OrderSubmission
from .orders.order_schemas import OrderStatus


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run sample swap orders through the order engine")
    parser.add_argument('--orders', type=int, default=3, help="number of orders to submit")
    parser.add_argument('--token-in', default='SOL')
    parser.add_argument('--token-out', default='USDC')
    parser.add_argument('--amount', default='10')
    parser.add_argument('--env-file', default=None, help=".env file to load configuration from")
    parser.add_argument('--timeout', type=float, default=60.0, help="seconds to wait for all orders")
    return parser.parse_args(argv)


async def watch(submission: OrderSubmission) -> None:
    async for event in submission.subscription:
        print(f"[{submission.order_id[:8]}] {event.to_json()}")
        if event.status.is_terminal():
            break
    submission.subscription.close()


async def run(args: argparse.Namespace) -> bool:
    config = EngineConfig.from_env(args.env_file)
    configure_logging(config.log_level, config.log_file)

    async with OrderEngine(config) as engine:
        health = await engine.health_check()
        if not health['store']:
            logger.error("Order store is unavailable")
            return False

        submissions = [
            await engine.submit_order(args.token_in, args.token_out, args.amount, subscribe=True)
            for _ in range(args.orders)
        ]
        await asyncio.wait_for(asyncio.gather(*(watch(s) for s in submissions)), args.timeout)

        confirmed = 0
        for submission in submissions:
            order = await engine.wait_for_order(submission.order_id, args.timeout)
            if order is not None and order.status is OrderStatus.CONFIRMED:
                confirmed += 1
            print(order)

        print(f"\n{confirmed}/{len(submissions)} orders confirmed")
        print(engine.get_stats()['latency'])
        return confirmed == len(submissions)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return 0 if asyncio.run(run(args)) else 1
    except asyncio.TimeoutError:
        logger.error(f"Orders did not finish within {args.timeout}s")
        return 1


if __name__ == "__main__":
    sys.exit(main())
