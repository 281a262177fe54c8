"""
Checkout Race Test for the storefront service
Hammers the order and payment endpoints concurrently and checks that
scarce stock is never oversold and that each order gets at most one payment.
Reports p50/p90/p95/p99 latency per endpoint.
"""
import argparse
import asyncio
import json
import statistics
import time
from collections import defaultdict
from datetime import datetime

import aiohttp


class CheckoutRaceTester:
    def __init__(self, base_url="http://localhost:8000", buyers=50, stock=10, initiators=20):
        self.base_url = base_url
        self.buyers = buyers
        self.stock = stock
        self.initiators = initiators
        self.latencies = defaultdict(list)
        self.status_codes = defaultdict(lambda: defaultdict(int))
        self.errors = defaultdict(int)

    async def call(self, session, label, method, endpoint, json_data=None):
        """Make a single HTTP request and track latency and status per label"""
        url = f"{self.base_url}{endpoint}"
        start_time = time.time()
        try:
            async with session.request(method, url, json=json_data, timeout=aiohttp.ClientTimeout(total=30)) as response:
                body = await response.json(content_type=None)
                self.latencies[label].append(time.time() - start_time)
                self.status_codes[label][response.status] += 1
                return response.status, body
        except asyncio.TimeoutError:
            self.errors["Timeout"] += 1
            return "TIMEOUT", None
        except aiohttp.ClientError as e:
            self.errors[type(e).__name__] += 1
            return "ERROR", None

    async def race_for_stock(self, session):
        """N buyers compete for a product with fewer units than buyers."""
        status, body = await self.call(session, "create_product", "POST", "/products", {
            "name": f"Race item {int(time.time() * 1000)}",
            "price": 10000,
            "stock": self.stock,
        })
        if status != 200:
            raise RuntimeError(f"Could not create race product: {status} {body}")
        product_id = body["product"]["id"]

        orders = [
            self.call(session, "create_order", "POST", "/orders", {
                "user_id": buyer + 1,
                "items": [{"product_id": product_id, "quantity": 1, "price": 10000}],
                "total_amount": 10000,
            })
            for buyer in range(self.buyers)
        ]
        results = await asyncio.gather(*orders)
        created = [body["order"] for status, body in results if status == 200]
        rejected = sum(1 for status, body in results if status == 400 and body and body.get("error") == "insufficient_stock")

        _, detail = await self.call(session, "product_detail", "GET", f"/products/{product_id}")
        final_stock = detail["product"]["stock"] if detail else None

        print(f"\nSTOCK RACE (stock={self.stock}, buyers={self.buyers}):")
        print(f"  Orders created: {len(created)}")
        print(f"  Rejected (insufficient_stock): {rejected}")
        print(f"  Final stock: {final_stock}")
        oversold = len(created) > self.stock or (final_stock is not None and final_stock < 0)
        print(f"  Oversold: {'YES' if oversold else 'no'}")
        return created, not oversold

    async def race_for_payment(self, session, order):
        """Concurrent initiations against the same order; exactly one may win."""
        attempts = [
            self.call(session, "initiate_payment", "POST", "/payment", {
                "order_id": order["id"],
                "user_id": order["user_id"],
                "amount": order["total_amount"],
                "method": "dana",
            })
            for _ in range(self.initiators)
        ]
        results = await asyncio.gather(*attempts)
        duplicates = sum(1 for status, body in results if body and body.get("error") == "payment_already_exists")
        winners = len(results) - duplicates

        print(f"\nPAYMENT RACE (order={order['id']}, initiators={self.initiators}):")
        print(f"  Accepted initiations: {winners}")
        print(f"  Rejected as duplicate: {duplicates}")
        return winners == 1

    def print_latencies(self):
        print(f"\nRESPONSE TIMES (LATENCY):")
        for label, samples in sorted(self.latencies.items()):
            samples = sorted(samples)
            p = lambda q: samples[min(int(len(samples) * q), len(samples) - 1)] * 1000
            print(
                f"  {label:<18} n={len(samples):<5} mean={statistics.mean(samples)*1000:.1f}ms "
                f"p50={p(0.50):.1f}ms p90={p(0.90):.1f}ms p95={p(0.95):.1f}ms p99={p(0.99):.1f}ms"
            )
        print(f"\nSTATUS CODES:")
        for label, codes in sorted(self.status_codes.items()):
            print(f"  {label:<18} " + ", ".join(f"{code}: {count}" for code, count in sorted(codes.items())))
        if self.errors:
            print(f"\nERRORS:")
            for error, count in sorted(self.errors.items(), key=lambda x: x[1], reverse=True):
                print(f"  {error}: {count:,}")

    async def run(self):
        print(f"\n{'='*80}")
        print("CHECKOUT RACE TEST")
        print(f"{'='*80}")
        print(f"Base URL: {self.base_url}")

        connector = aiohttp.TCPConnector(limit=max(self.buyers, self.initiators))
        async with aiohttp.ClientSession(connector=connector) as session:
            created, stock_ok = await self.race_for_stock(session)
            payment_ok = await self.race_for_payment(session, created[0]) if created else False

        self.print_latencies()
        passed = stock_ok and payment_ok
        print(f"\n{'='*80}")
        print(f"RESULT: {'PASS' if passed else 'FAIL'}")
        print(f"{'='*80}\n")

        results_file = f"checkout_race_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with open(results_file, "w") as f:
            json.dump({
                "passed": passed,
                "stock_ok": stock_ok,
                "payment_ok": payment_ok,
                "status_codes": {k: dict(v) for k, v in self.status_codes.items()},
                "errors": dict(self.errors),
            }, f, indent=2)
        print(f"Results saved to: {results_file}\n")
        return passed


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--buyers", type=int, default=50)
    parser.add_argument("--stock", type=int, default=10)
    parser.add_argument("--initiators", type=int, default=20)
    args = parser.parse_args()

    tester = CheckoutRaceTester(args.base_url, args.buyers, args.stock, args.initiators)
    passed = asyncio.run(tester.run())
    raise SystemExit(0 if passed else 1)


if __name__ == "__main__":
    main()
