"""Command-line client for the auction HTTP API."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, Sequence

import httpx
import orjson

DEFAULT_URL = os.getenv("AUCTION_URL", "http://127.0.0.1:8080")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="auctionctl", description=__doc__)
    parser.add_argument("--url", default=DEFAULT_URL, help="auction API base URL")
    parser.add_argument("--timeout", type=float, default=5.0, help="request timeout in seconds")
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add-listing", help="put a catalog item up for auction")
    add.add_argument("item_id", type=int)
    add.add_argument("--expiry", help="ISO-8601 expiry, defaults to the season default")
    add.add_argument("--initial-price", help="defaults to the list price ratio")

    bid = commands.add_parser("bid", help="place a bid on a listed item")
    bid.add_argument("item_id", type=int)
    bid.add_argument("bidder_id", type=int)
    bid.add_argument("--amount", help="defaults to one minimum increment above the floor")

    cancel = commands.add_parser("cancel-listing", help="withdraw an item from auction")
    cancel.add_argument("item_id", type=int)

    settle = commands.add_parser("settle", help="close expired auctions")
    settle.add_argument("--now", help="ISO-8601 instant to settle at")

    history = commands.add_parser("history", help="list a customer's bids")
    history.add_argument("customer_id", type=int)
    history.add_argument("start")
    history.add_argument("end")
    history.add_argument(
        "--all",
        dest="active_only",
        action="store_false",
        help="include bids on sold and cancelled listings",
    )
    return parser


def _request(client: httpx.Client, args: argparse.Namespace) -> httpx.Response:
    if args.command == "add-listing":
        body: dict[str, Any] = {"item_id": args.item_id}
        if args.expiry:
            body["expiry"] = args.expiry
        if args.initial_price:
            body["initial_price"] = args.initial_price
        return client.post("/auction/listings", json=body)
    if args.command == "bid":
        body = {"bidder_id": args.bidder_id}
        if args.amount:
            body["amount"] = args.amount
        return client.post(f"/auction/listings/{args.item_id}/bids", json=body)
    if args.command == "cancel-listing":
        return client.post(f"/auction/listings/{args.item_id}/cancel")
    if args.command == "settle":
        return client.post("/auction/settlement", json={"now": args.now} if args.now else {})
    if args.command == "history":
        return client.get(
            f"/auction/customers/{args.customer_id}/history",
            params={
                "start": args.start,
                "end": args.end,
                "active_only": str(args.active_only).lower(),
            },
        )
    raise ValueError(f"unknown command {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    with httpx.Client(base_url=args.url, timeout=args.timeout) as client:
        try:
            response = _request(client, args)
        except httpx.HTTPError as exc:
            print(f"request failed: {exc}", file=sys.stderr)
            return 2
    output = orjson.dumps(response.json(), option=orjson.OPT_INDENT_2).decode()
    if response.is_error:
        print(output, file=sys.stderr)
        return 1
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
