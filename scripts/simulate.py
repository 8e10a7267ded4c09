"""
Checkout Simulation Script

Drives the checkout API with random carts and customers, mixing in a share
of bad card data, to exercise validation, rate limiting and the payment
stages end to end.
Run from project root (API running): python scripts/simulate.py

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 10

FIRST_NAMES = ["Ada", "Kofi", "Zainab", "Tunde", "Amara", "Chidi", "Ngozi", "Femi", "Kemi", "Bola"]
LAST_NAMES = ["Okafor", "Mensah", "Bello", "Adeyemi", "Eze", "Owusu", "Balogun", "Nwosu", "Diallo", "Sow"]
STREETS = ["Hollywood Blvd", "Sunset Blvd", "Vine St", "Highland Ave", "Melrose Ave"]
ZIPS = ["90028", "90038", "90046", "90069"]
MENU_ITEMS = [
    {"id": 1, "name": "Jollof Rice", "price": 12.99},
    {"id": 2, "name": "Suya Platter", "price": 15.99},
    {"id": 3, "name": "Fried Plantain", "price": 5.99},
    {"id": 4, "name": "Egusi Soup", "price": 14.49},
    {"id": 5, "name": "Puff Puff", "price": 4.99},
    {"id": 6, "name": "Chapman", "price": 3.99},
]

GOOD_CARDS = ["4242424242424242", "5555555555554444", "378282246310005"]
BAD_CARDS = ["4242424242424241", "1234", "0000000000000000"]


def generate_random_customer() -> dict[str, str]:
    first = random.choice(FIRST_NAMES)
    last = random.choice(LAST_NAMES)
    return {
        "firstName": first,
        "lastName": last,
        "email": f"{first.lower()}.{last.lower()}@mail.com",
        "phone": f"(555) {random.randint(100, 999)}-{random.randint(1000, 9999)}",
        "address": f"{random.randint(1, 999)} {random.choice(STREETS)}",
        "city": "Hollywood",
        "zipCode": random.choice(ZIPS),
    }


def generate_random_lines() -> list[dict]:
    lines = []
    for item in random.sample(MENU_ITEMS, random.randint(1, 4)):
        lines.append({**item, "quantity": random.randint(1, 3)})
    return lines


def generate_payment(bad_card_rate: float) -> dict[str, str]:
    method = random.choice(["credit", "credit", "credit", "paypal", "cash"])
    if method != "credit":
        return {"method": method}

    card = random.choice(BAD_CARDS if random.random() < bad_card_rate else GOOD_CARDS)
    next_year = (datetime.now().year + 2) % 100
    return {
        "method": "credit",
        "cardNumber": card,
        "expiryDate": f"12/{next_year:02d}",
        "cvv": "1234" if card.startswith("37") else "123",
        "nameOnCard": "Card Holder",
    }


def generate_checkout_payload(bad_card_rate: float = 0.2) -> dict[str, Any]:
    return {
        "customer": generate_random_customer(),
        "payment": generate_payment(bad_card_rate),
        "delivery": {
            "method": random.choice(["pickup", "delivery"]),
            "specialInstructions": random.choice(["", "Extra pepper", "Ring doorbell"]),
        },
        "lines": generate_random_lines(),
    }


async def send_checkout(
    client: httpx.AsyncClient,
    order_num: int,
    bad_card_rate: float,
) -> dict[str, Any]:
    """POST one checkout and summarize the outcome."""
    payload = generate_checkout_payload(bad_card_rate)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/checkout",
            json=payload,
            timeout=60.0,
        )
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "status": None,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }

    elapsed = round(time.time() - start_time, 3)
    data = response.json()

    if response.status_code == 200:
        order = data["order"]
        return {
            "order_num": order_num,
            "success": True,
            "status": 200,
            "order_id": order["id"],
            "total": order["total"],
            "time": elapsed,
        }

    return {
        "order_num": order_num,
        "success": False,
        "status": response.status_code,
        "error": "; ".join(str(d) for d in data.get("detail", []))[:100],
        "time": elapsed,
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    concurrency: int = 1,
    bad_card_rate: float = 0.2,
) -> dict[str, Any]:
    """
    Run the checkout simulation.

    Bad cards are stopped by the payment step check (HTTP 422) before any
    attempt is counted. Every submission that reaches validation counts
    against one attempt counter shared by all API clients, so high
    concurrency alone trips the lockout (HTTP 429).

    Args:
        num_orders: Number of checkouts to submit
        concurrency: Checkouts in flight at once
        bad_card_rate: Share of credit payments using an invalid card
    """
    print("=" * 70)
    print("🛒 CHECKOUT SIMULATION")
    print("=" * 70)
    print(f"📋 Total Checkouts: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔀 Concurrency: {concurrency}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    semaphore = asyncio.Semaphore(concurrency)
    start_time = time.time()

    async with httpx.AsyncClient() as client:
        async def bounded(i: int) -> dict[str, Any]:
            async with semaphore:
                result = await send_checkout(client, i + 1, bad_card_rate)
                mark = "✅" if result["success"] else f"❌ {result['status']}"
                print(f"   #{result['order_num']:>3} {mark} ({result['time']}s)")
                return result

        results = await asyncio.gather(*(bounded(i) for i in range(num_orders)))

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    by_status: dict[Any, int] = {}
    for r in failed:
        by_status[r["status"]] = by_status.get(r["status"], 0) + 1

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Checkouts: {len(successful)}/{num_orders}")
    print(f"❌ Rejected Checkouts: {len(failed)}/{num_orders}")
    for status, count in sorted(by_status.items(), key=lambda kv: str(kv[0])):
        print(f"   HTTP {status}: {count}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r["total"] for r in successful)
        print(f"\n📈 Average Checkout: {avg_time}s")
        print(f"💰 Total Revenue: ${total_revenue:.2f}")

    if failed:
        print("\n⚠️  Rejection Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Checkout #{f['order_num']} [{f['status']}]: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print("1. Run: python scripts/verify.py")
    print(f"2. Visit {API_BASE_URL}/api/dashboard-data for statistics")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def preflight() -> bool:
    """Health check before the simulation."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"❌ API unreachable: {e}")
            return False

    if response.status_code != 200:
        print(f"❌ Health check failed: {response.text}")
        return False

    data = response.json()
    print(f"✅ Status: {data.get('status')}")
    print(f"   Order store: {data.get('orderStore')}")
    print(f"   Payment service: {data.get('paymentService')}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of checkouts")
    parser.add_argument("--concurrency", type=int, default=1, help="Checkouts in flight at once")
    parser.add_argument("--bad-card-rate", type=float, default=0.2, help="Share of invalid cards")
    parser.add_argument("--skip-preflight", action="store_true", help="Skip the health check")
    args = parser.parse_args()

    if not args.skip_preflight and not asyncio.run(preflight()):
        sys.exit(1)

    asyncio.run(run_simulation(
        num_orders=args.orders,
        concurrency=args.concurrency,
        bad_card_rate=args.bad_card_rate,
    ))
