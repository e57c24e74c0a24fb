#!/usr/bin/env python3
# PURPOSE: Command-line loop that prints the market-metrics envelope for pool ids.
# CONTEXT: Exercises the same handlers as the deployed Lambda, against the live provider.
#          Type a pool id, "stats" for cache statistics or "clear" to empty the cache.

import json, sys
from yieldrisk.lambda_handler import market_metrics_handler, cache_admin_handler

print("YieldRisk CLI: enter a pool id, 'stats' or 'clear'. Ctrl+C to exit.")

while True:
    try:
        text = input("> ").strip()
        if not text:
            continue

        if text in ("stats", "clear"):
            resp = cache_admin_handler({"httpMethod": "POST", "body": json.dumps({"action": text})})
        else:
            resp = market_metrics_handler({"httpMethod": "GET", "pathParameters": {"id": text}})

        print(resp["statusCode"])
        print(json.dumps(json.loads(resp["body"]), indent=2))

    except (EOFError, KeyboardInterrupt):
        print("\nBye!")
        sys.exit(0)
