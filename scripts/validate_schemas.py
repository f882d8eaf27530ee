"""Checks the request schemas against sample payloads the API must accept or reject.

Loading the registry meta-validates every schema file; each sample then
confirms the schema still draws the line where the handlers expect it.
"""

from __future__ import annotations

import sys
from typing import Any

from auction_engine.errors import InvalidArgument
from auction_engine.validation.validator import SchemaRegistry, get_schema_registry

# (schema, payload, accepted)
SAMPLES: list[tuple[str, dict[str, Any], bool]] = [
    ("listing_request", {"item_id": 100}, True),
    ("listing_request", {"item_id": 100, "initial_price": "55.50"}, True),
    ("listing_request", {"expiry": "2014-11-20T00:00:00Z"}, False),
    ("listing_request", {"item_id": 100, "initial_price": "-1"}, False),
    ("bid_request", {"bidder_id": 1}, True),
    ("bid_request", {"bidder_id": 1, "amount": "-3.50"}, True),
    ("bid_request", {"bidder_id": 1, "amount": "1e3"}, False),
    ("bid_request", {"bidder_id": 0}, False),
    ("settlement_request", {}, True),
    ("settlement_request", {"now": 1416441600}, False),
    ("history_query", {"start": "2014-11-16T00:00:00Z", "end": "2014-11-17T00:00:00Z"}, True),
    ("history_query", {"start": "2014-11-16T00:00:00Z"}, False),
]


def run_samples(registry: SchemaRegistry) -> list[str]:
    """Return a description of every sample the registry classifies wrongly."""
    failures = []
    for schema_name, payload, accepted in SAMPLES:
        try:
            registry.check(schema_name, payload)
            passed = True
        except InvalidArgument:
            passed = False
        if passed is not accepted:
            verdict = "rejected" if accepted else "accepted"
            failures.append(f"{schema_name}: {verdict} {payload}")
    return failures


def main() -> int:
    registry = get_schema_registry()
    failures = run_samples(registry)
    for failure in failures:
        print(failure, file=sys.stderr)
    print(f"{len(registry.names())} schemas, {len(SAMPLES) - len(failures)}/{len(SAMPLES)} samples ok")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
