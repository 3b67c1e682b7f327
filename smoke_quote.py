#!/usr/bin/env python3
"""
Smoke check for the quote flow against a running server
Prices a tee time, asks for a signed quote, then verifies it (and a tampered copy)

Usage:
  uvicorn teeprice.main:app  (with QUOTE_SECRET set and populate_pricing.py run)
  python smoke_quote.py [YYYY-MM-DD]
"""

import sys
from datetime import date, timedelta

import requests

# Configuration
BASE_URL = "http://localhost:8000"
COURSE_ID = "puerto-los-cabos"


def print_section(title):
    """Print a formatted section header"""
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}\n")


def calculate(day):
    print_section("1. Calculate Price")
    response = requests.post(
        f"{BASE_URL}/pricing/calculate",
        json={"courseId": COURSE_ID, "date": day, "time": "08:00", "players": 2},
    )
    response.raise_for_status()
    data = response.json()
    print(f"Base price: ${data['basePrice']:.2f}")
    for rule in data["appliedRules"]:
        print(f"  - {rule['name']} ({rule['type']} {rule['value']}) -> ${rule['resultPrice']:.2f}")
    print(f"Per player: ${data['finalPricePerPlayer']:.2f}")
    print(f"Total: ${data['totalPrice']:.2f}")


def quote(day):
    print_section("2. Get Signed Quote")
    response = requests.post(
        f"{BASE_URL}/checkout/quote",
        json={"courseId": COURSE_ID, "date": day, "time": "08:00", "players": 2, "holes": 18},
    )
    response.raise_for_status()
    data = response.json()
    print(f"Subtotal: {data['subtotal_cents']} cents")
    print(f"Discount: {data['discount_cents']} cents")
    print(f"Tax ({data['tax_rate']:.0%}): {data['tax_cents']} cents")
    print(f"Total: {data['total_cents']} {data['currency']} cents")
    print(f"Expires: {data['expires_at']}")
    return data


def verify(data):
    print_section("3. Verify Quote")
    response = requests.post(f"{BASE_URL}/checkout/verify", json=data)
    print(f"Untouched quote: {response.status_code} {response.json()}")
    ok = response.status_code == 200

    tampered = dict(data, total_cents=data["total_cents"] - 100)
    response = requests.post(f"{BASE_URL}/checkout/verify", json=tampered)
    print(f"Tampered quote: {response.status_code} {response.json()}")
    return ok and response.status_code == 400


def main():
    day = sys.argv[1] if len(sys.argv) > 1 else (date.today() + timedelta(days=7)).strftime("%Y-%m-%d")
    try:
        calculate(day)
        ok = verify(quote(day))
    except requests.exceptions.ConnectionError:
        print("Error: Cannot connect to server")
        print(f"   Make sure the FastAPI app is running on {BASE_URL}")
        return 1
    except requests.exceptions.HTTPError as e:
        print(f"Error: {e.response.status_code} - {e.response.text}")
        return 1

    print_section("Result")
    print("OK" if ok else "FAILED")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
