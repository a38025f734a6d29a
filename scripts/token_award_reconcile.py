"""Fetch and print payment transactions stuck in TOKEN_AWARD_FAILED."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for crediting reconciliation."""

    parser = argparse.ArgumentParser(description="List transactions whose token credit failed.")
    parser.add_argument("--service-url", default="http://localhost:8000")
    parser.add_argument("--status", default="TOKEN_AWARD_FAILED")
    parser.add_argument("--gateway", default="stripe")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    resp = httpx.get(
        f"{args.service_url}/transactions",
        params={"status": args.status, "gateway": args.gateway, "limit": args.limit},
        timeout=10.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
