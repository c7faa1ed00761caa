"""HTTP benchmark for account proxy endpoints, cold vs. cached."""
import argparse
import asyncio
import statistics
import time

import httpx

BASE_URL = "http://localhost:8000"


def endpoints(user: str) -> list[tuple[str, str, dict]]:
    auth = {"Authorization": f"Bearer {user}"}
    return [
        (f"GET /~{user}", f"/~{user}", {}),
        ("GET /profile", "/profile", auth),
        ("GET /profile-edit", "/profile-edit", auth),
        ("GET /api/v1/metrics", "/api/v1/metrics", {}),
        ("GET /health", "/health", {}),
    ]


async def benchmark_endpoint(
    client: httpx.AsyncClient, base_url: str, name: str, path: str, headers: dict, iterations: int = 50
):
    times = []
    upstream_calls = []
    errors = 0

    # The first request populates the cache; report it separately.
    start = time.perf_counter()
    try:
        cold = await client.get(f"{base_url}{path}", headers=headers)
        cold_ms = round((time.perf_counter() - start) * 1000, 2) if cold.status_code == 200 else None
    except httpx.HTTPError:
        cold_ms = None

    for _ in range(iterations):
        try:
            start = time.perf_counter()
            resp = await client.get(f"{base_url}{path}", headers=headers)
            elapsed = (time.perf_counter() - start) * 1000

            if resp.status_code == 200:
                times.append(elapsed)
                calls = resp.headers.get("X-Upstream-Calls")
                if calls is not None:
                    upstream_calls.append(int(calls))
            else:
                errors += 1
        except httpx.HTTPError:
            errors += 1

    if not times:
        return {"name": name, "error": f"All {iterations} requests failed"}

    return {
        "name": name,
        "cold_ms": cold_ms,
        "avg_ms": round(statistics.mean(times), 2),
        "p50_ms": round(sorted(times)[len(times) // 2], 2),
        "p95_ms": round(sorted(times)[int(len(times) * 0.95)], 2),
        "p99_ms": round(sorted(times)[int(len(times) * 0.99)], 2),
        "upstream": round(statistics.mean(upstream_calls), 1) if upstream_calls else "N/A",
        "errors": errors,
        "iterations": len(times),
    }


async def run_benchmark(base_url: str, user: str, iterations: int = 50):
    print("=" * 88)
    print(f"Account Proxy Benchmark, {iterations} iterations per endpoint")
    print(f"Target: {base_url}  user: {user}")
    print("=" * 88)

    async with httpx.AsyncClient() as client:
        try:
            resp = await client.get(f"{base_url}/health")
            if resp.status_code != 200:
                print(f"ERROR: Health check failed ({resp.status_code})")
                return
            print(f"Health: {resp.json()}")
        except httpx.HTTPError as e:
            print(f"ERROR: Cannot connect to {base_url}: {e}")
            return

        print()
        print(
            f"{'Endpoint':<30} {'Cold':>9} {'Avg':>9} {'P50':>9} {'P95':>9} "
            f"{'P99':>9} {'Upstream':>9} {'Err':>4}"
        )
        print("-" * 88)

        for name, path, headers in endpoints(user):
            result = await benchmark_endpoint(client, base_url, name, path, headers, iterations)

            if "error" in result:
                print(f"{result['name']:<30} {'ERROR':>9}")
                continue
            cold = f"{result['cold_ms']:.1f}ms" if result["cold_ms"] is not None else "-"
            print(
                f"{result['name']:<30} "
                f"{cold:>9} "
                f"{result['avg_ms']:>7.1f}ms "
                f"{result['p50_ms']:>7.1f}ms "
                f"{result['p95_ms']:>7.1f}ms "
                f"{result['p99_ms']:>7.1f}ms "
                f"{str(result['upstream']):>9} "
                f"{result['errors']:>4}"
            )

        print("-" * 88)
        print("\nBenchmark complete.")


def main():
    parser = argparse.ArgumentParser(description="Benchmark the account proxy")
    parser.add_argument("-n", "--iterations", type=int, default=50, help="Iterations per endpoint")
    parser.add_argument("--base-url", default=BASE_URL, help="Proxy base URL")
    parser.add_argument("--user", default="bob", help="Account to request profiles for")
    args = parser.parse_args()
    asyncio.run(run_benchmark(args.base_url, args.user, args.iterations))


if __name__ == "__main__":
    main()
