"""Sign a JSON event and POST it to a running webhook service.

Useful for local end-to-end checks and duplicate-delivery testing: send the
same file twice and the second response must carry the same transactionId.
"""

import argparse
import json
import time
from pathlib import Path

import httpx
import stripe


def stripe_signature(payload: str, secret: str, timestamp: int) -> str:
    """Build a `stripe-signature` header value (`t=...,v1=...`)."""

    return stripe.WebhookSignature.generate_signature_header(payload, secret, timestamp)


def main() -> None:
    """Parse CLI args, sign one payload, and print the service response."""

    parser = argparse.ArgumentParser(description="Send a signed test webhook to the ingestion service.")
    parser.add_argument("--url", default="http://localhost:8000/webhooks/stripe")
    parser.add_argument("--secret", required=True, help="Webhook signing secret (whsec_...)")
    parser.add_argument("--json", dest="json_inline", default=None, help="Inline JSON event")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to JSON event file")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same event N times")
    args = parser.parse_args()

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")

    raw = args.json_inline if args.json_inline else Path(args.json_file).read_text()
    payload = json.dumps(json.loads(raw))
    for attempt in range(1, args.repeat + 1):
        header = stripe_signature(payload, args.secret, int(time.time()))
        resp = httpx.post(
            args.url,
            content=payload.encode("utf-8"),
            headers={"content-type": "application/json", "stripe-signature": header},
            timeout=10.0,
        )
        print(f"attempt={attempt} status={resp.status_code} body={resp.text}")


if __name__ == "__main__":
    main()
