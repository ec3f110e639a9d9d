"""
Checkout Simulation Script

Fires many concurrent customer checkouts at one truck to exercise the
payment webhook, the client-side fallback and order-number uniqueness.
Requires the API running in development mode (mock payments).

Run from project root: python scripts/simulate.py --truck-id <id>
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from qrtruck.client import OrderSuccessPoller

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
LOST_WEBHOOK_RATE = 0.3

# Sample data for random customers
FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Tremblay", "Roy", "Brown", "Wilson", "Gagnon", "Martin", "Lee", "Singh", "Taylor"]


def generate_random_customer() -> dict[str, str]:
    """Generate random customer info."""
    first = random.choice(FIRST_NAMES)
    last = random.choice(LAST_NAMES)
    return {
        "name": f"{first} {last}",
        "email": f"{first.lower()}.{last.lower()}@example.com",
        "phone": f"416-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
    }


def generate_random_items(menu: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Pick 1-4 menu lines with random quantities."""
    picks = random.sample(menu, k=min(len(menu), random.randint(1, 4)))
    return [
        {"menu_item_id": item["id"], "quantity": random.randint(1, 3)}
        for item in picks
    ]


async def fetch_menu(client: httpx.AsyncClient, truck_id: str) -> list[dict[str, Any]]:
    response = await client.get(f"{API_BASE_URL}/api/trucks/{truck_id}")
    response.raise_for_status()
    return response.json().get("menu_items", [])


# =============================================================================
# CHECKOUT FLOW
# =============================================================================

async def send_checkout(
    client: httpx.AsyncClient,
    truck_id: str,
    menu: list[dict[str, Any]],
    checkout_num: int,
) -> dict[str, Any]:
    """
    Run one checkout: create intent, pay, then wait for the order.

    Some payments are made without delivering the webhook so the success
    page has to fall back to creating the order itself.
    """
    lost_webhook = random.random() < LOST_WEBHOOK_RATE
    start_time = time.time()
    result: dict[str, Any] = {
        "checkout_num": checkout_num,
        "success": False,
        "lost_webhook": lost_webhook,
    }

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/payment/create-intent",
            json={
                "truck_id": truck_id,
                "items": generate_random_items(menu),
                "customer": generate_random_customer(),
            },
            timeout=30.0,
        )
        if response.status_code != 200:
            result["error"] = f"create-intent {response.status_code}: {response.text[:100]}"
            return result

        intent = response.json()
        result["order_number"] = intent["order_number"]
        result["total"] = intent["breakdown"]["total"]

        response = await client.post(
            f"{API_BASE_URL}/webhook/simulation/payment-succeeded",
            json={
                "payment_intent_id": intent["payment_intent_id"],
                "deliver_webhook": not lost_webhook,
            },
            timeout=30.0,
        )
        if response.status_code != 200:
            result["error"] = f"payment {response.status_code}: {response.text[:100]}"
            return result

        poller = OrderSuccessPoller(client=client, interval=0.5)
        poll = await poller.wait_for_order(intent["order_number"], intent["payment_intent_id"])

        result["success"] = poll.found
        result["attempts"] = poll.attempts
        result["fallback_used"] = poll.fallback_used
        result["fallback_conflict"] = poll.fallback_conflict
        if poll.found:
            result["pickup_code"] = poll.order.get("pickup_code")
        else:
            result["error"] = "order never appeared"
        return result

    except httpx.HTTPError as e:
        result["error"] = str(e)[:100]
        return result
    finally:
        result["time"] = round(time.time() - start_time, 3)


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(truck_id: str, num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """Run the checkout simulation against one truck."""
    print("=" * 70)
    print("🔥 CHECKOUT SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Checkouts: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🚚 Truck: {truck_id}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(base_url=API_BASE_URL) as client:
        menu = await fetch_menu(client, truck_id)
        if not menu:
            print("\n❌ Truck has no available menu items")
            return {"total": num_orders, "successful": 0, "failed": num_orders, "results": []}

        print(f"\n🚀 Firing {num_orders} checkouts over {len(menu)} menu items...\n")
        tasks = [send_checkout(client, truck_id, menu, i + 1) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    # Analyze results
    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    fallback = [r for r in successful if r.get("fallback_used")]
    conflicts = [r for r in successful if r.get("fallback_conflict")]
    order_numbers = [r["order_number"] for r in successful]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Orders Placed: {len(successful)}/{num_orders}")
    print(f"❌ Failed Checkouts: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")
    print(f"\n🔁 Fallback Used: {len(fallback)} (409 conflicts: {len(conflicts)})")

    if len(set(order_numbers)) != len(order_numbers):
        print("⚠️  Duplicate order numbers detected!")
    else:
        print("✅ Order numbers unique")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r.get("total", 0) for r in successful)

        print("\n📈 Performance Metrics:")
        print(f"   Average Checkout: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Collected: ${total_revenue:.2f}")

    if failed:
        print("\n⚠️  Failed Checkout Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Checkout #{f['checkout_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print(f"1. Export a tax report: POST /api/trucks/{truck_id}/tax-audit/export")
    print("2. Check Celery terminal - the export task should complete")
    print("3. Run: python scripts/verify.py")
    print(f"4. Visit {API_BASE_URL}/t/{truck_id} to see the storefront")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def test_single_flows(truck_id: str) -> bool:
    """Test individual flows before the simulation."""
    print("\n" + "=" * 70)
    print("🧪 TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    async with httpx.AsyncClient(base_url=API_BASE_URL) as client:
        # Test 1: Health check
        print("\n1️⃣ Health Check...")
        response = await client.get("/health")
        if response.status_code == 200:
            data = response.json()
            print(f"   ✅ Status: {data.get('status')}")
            print(f"   Database: {data.get('database')}")
            print(f"   Redis: {data.get('redis')}")
            print(f"   Payments: {data.get('payment_service')}")
        else:
            print(f"   ❌ Failed: {response.text}")
            return False

        # Test 2: Truck availability
        print("\n2️⃣ Truck Check...")
        response = await client.get(f"/api/trucks/check/{truck_id}")
        data = response.json()
        if response.status_code == 200 and data.get("exists") and data.get("is_active"):
            print(f"   ✅ {data.get('name')}")
        else:
            print(f"   ❌ Truck not available: {response.text}")
            return False

        # Test 3: Single checkout through the webhook
        print("\n3️⃣ Single Checkout...")
        menu = await fetch_menu(client, truck_id)
        if not menu:
            print("   ❌ No menu items")
            return False
        result = await send_checkout(client, truck_id, menu, 0)
        if result["success"]:
            print(f"   ✅ Order {result['order_number']} - pickup code {result.get('pickup_code')}")
            print(f"   Total: ${result.get('total')}")
        else:
            print(f"   ⚠️ {result.get('error')}")

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Simulation Script")
    parser.add_argument("--truck-id", required=True, help="Truck to order from (see scripts/seed.py)")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of checkouts")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual tests")
    args = parser.parse_args()

    if not args.skip_tests:
        success = asyncio.run(test_single_flows(args.truck_id))
        if not success:
            print("\n❌ Pre-flight tests failed. Fix issues before running simulation.")
            sys.exit(1)

        print("\n✅ Pre-flight tests passed!")
        input("\nPress Enter to start the simulation...")

    asyncio.run(run_simulation(args.truck_id, num_orders=args.orders))
