#!/usr/bin/env python3
"""
Verify a captured webhook body against a tenant secret.

Receivers must check the signature over the raw body bytes before parsing JSON.

  python scripts/verify_webhook.py --secret $WEBHOOK_SECRET \
      --signature "sha256=..." --body body.json
  python scripts/verify_webhook.py --secret $WEBHOOK_SECRET --sign --body body.json
"""
import argparse
import sys

from plugin_api.utils.crypto import sign, verify

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check or compute an X-Plugin-Signature")
    parser.add_argument("--secret", required=True, help="Tenant webhook secret")
    parser.add_argument("--body", default="-", help="File with the raw request body ('-' for stdin)")
    parser.add_argument("--signature", help="Value of the X-Plugin-Signature header")
    parser.add_argument("--sign", action="store_true", help="Print the signature instead of verifying")
    args = parser.parse_args(argv)

    if args.body == "-":
        body = sys.stdin.buffer.read()
    else:
        with open(args.body, "rb") as f:
            body = f.read()

    if args.sign:
        print(sign(body, args.secret))
        return 0

    if not args.signature:
        parser.error("--signature is required unless --sign is given")

    if verify(body, args.signature, args.secret):
        print("✅ signature valid")
        return 0
    print("❌ signature mismatch")
    return 1

if __name__ == "__main__":
    sys.exit(main())
