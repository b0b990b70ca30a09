"""Sign a JSON event with a webhook secret and post it to the gateway.

Useful for exercising the webhook route locally without the provider's CLI.
"""

import argparse
import json
import os
from pathlib import Path
from uuid import uuid4

import httpx

from paygate.services.provider.stripe_gateway import sign_webhook_payload


def build_event(event_type: str, object_id: str) -> dict:
    """Minimal event envelope with the fields the dispatcher reads."""

    return {
        "id": f"evt_{uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": object_id}},
    }


def main() -> None:
    """Parse CLI args, sign one payload and print the gateway's answer."""

    parser = argparse.ArgumentParser(description="Post a signed webhook event to the gateway.")
    parser.add_argument("--base-url", default="http://localhost:3001")
    parser.add_argument("--secret", default=os.getenv("STRIPE_WEBHOOK_SECRET", ""))
    parser.add_argument("--type", dest="event_type", default="payment_intent.succeeded")
    parser.add_argument("--object-id", default="pi_test")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to a full JSON event")
    parser.add_argument("--bad-signature", action="store_true", help="Send a signature that will not verify")
    args = parser.parse_args()

    if not args.secret:
        raise SystemExit("Provide --secret or set STRIPE_WEBHOOK_SECRET")

    if args.json_file:
        payload = Path(args.json_file).read_bytes()
    else:
        payload = json.dumps(build_event(args.event_type, args.object_id)).encode("utf-8")

    secret = "whsec_wrong" if args.bad_signature else args.secret
    resp = httpx.post(
        f"{args.base_url}/api/webhooks/stripe",
        content=payload,
        headers={"content-type": "application/json", "stripe-signature": sign_webhook_payload(payload, secret)},
        timeout=10.0,
    )
    print(f"status={resp.status_code}")
    print(resp.text)


if __name__ == "__main__":
    main()
