"""Load test: hammer the GenBridge SG browse and matching endpoints.

Each bearer token acts as one user.  Checks that the fixed-window rate limit
holds (no more than BROWSE_RATE_LIMIT successes per user per window) and
reports latency for browse, candidates and swipe-session calls.

Usage: python -m scripts.load_test --token T1 --token T2 [--requests 40] [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import statistics
import sys
import time
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_REQUESTS = 40
DEFAULT_CONCURRENCY = 10
BROWSE_RATE_LIMIT = 30


async def timed_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    token: str,
    sem: asyncio.Semaphore,
    **kwargs: Any,
) -> tuple[int, float]:
    """Issue one request; returns (status, seconds).  Status 0 means transport error."""
    async with sem:
        t0 = time.monotonic()
        try:
            resp = await client.request(
                method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
            return resp.status_code, time.monotonic() - t0
        except httpx.HTTPError as e:
            print(f"  [ERROR] {method} {url}: {e}")
            return 0, time.monotonic() - t0


async def run_load_test(base_url: str, tokens: list[str], requests: int, concurrency: int) -> dict[str, Any]:
    """Run the three load phases and collect statistics."""
    print(f"\n{'='*60}")
    print(f"GenBridge SG Load Test — {len(tokens)} users x {requests} browse requests")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    api = f"{base_url}/api/v1"
    sem = asyncio.Semaphore(concurrency)
    results: dict[str, Any] = {
        "browse_ok": {},
        "browse_limited": {},
        "errors": 0,
        "timings": {"browse": [], "candidates": [], "session": []},
    }

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Phase 1: concurrent browse bursts per user
        print(f"[1/3] Browsing ({requests} requests per user)...")
        for token in tokens:
            outcomes = await asyncio.gather(*[
                timed_request(client, "GET", f"{api}/profiles/browse", token, sem)
                for _ in range(requests)
            ])
            key = token[:8]
            results["browse_ok"][key] = sum(1 for s, _ in outcomes if s == 200)
            results["browse_limited"][key] = sum(1 for s, _ in outcomes if s == 429)
            results["errors"] += sum(1 for s, _ in outcomes if s not in (200, 429))
            results["timings"]["browse"].extend(dt for _, dt in outcomes)
            print(f"  {key}: {results['browse_ok'][key]} ok, {results['browse_limited'][key]} rate-limited")

        # Phase 2: ranked candidates (shares the browse window, expect 429s)
        print("\n[2/3] Fetching ranked candidates...")
        outcomes = await asyncio.gather(*[
            timed_request(client, "GET", f"{api}/matching/candidates", token, sem)
            for token in tokens
        ])
        results["timings"]["candidates"].extend(dt for _, dt in outcomes)
        print(f"  statuses: {sorted(s for s, _ in outcomes)}")

        # Phase 3: swipe session start + a few passes
        print("\n[3/3] Driving swipe sessions...")
        for token in tokens:
            status, dt = await timed_request(client, "POST", f"{api}/matching/session", token, sem)
            results["timings"]["session"].append(dt)
            if status != 200:
                continue
            for _ in range(3):
                status, dt = await timed_request(
                    client, "POST", f"{api}/matching/session/swipe", token, sem,
                    json={"direction": "left"},
                )
                results["timings"]["session"].append(dt)
                if status != 200:
                    break
            await timed_request(client, "DELETE", f"{api}/matching/session", token, sem)

    # Summary
    print(f"\n{'='*60}")
    print("LOAD TEST RESULTS")
    print(f"{'='*60}")
    for phase, timings in results["timings"].items():
        if timings:
            print(f"\n{phase} latency:")
            print(f"  mean:   {statistics.mean(timings):.3f}s")
            print(f"  median: {statistics.median(timings):.3f}s")
            print(f"  p95:    {sorted(timings)[int(len(timings)*0.95)]:.3f}s")
            print(f"  max:    {max(timings):.3f}s")
    print(f"\nUnexpected statuses / errors: {results['errors']}")
    print(f"\n{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="GenBridge SG Load Test")
    parser.add_argument("--token", action="append", required=True, help="Bearer token (repeat per user)")
    parser.add_argument("--requests", type=int, default=DEFAULT_REQUESTS, help="Browse requests per user")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Max in-flight requests")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    args = parser.parse_args()

    results = asyncio.run(run_load_test(args.base_url, args.token, args.requests, args.concurrency))

    over_limit = [k for k, ok in results["browse_ok"].items() if ok > BROWSE_RATE_LIMIT]
    if over_limit:
        print(f"FAIL: rate limit exceeded for {', '.join(over_limit)}")
        sys.exit(1)
    if results["errors"]:
        print(f"FAIL: {results['errors']} unexpected responses")
        sys.exit(1)
    print("PASS: rate limit held and no unexpected responses")


if __name__ == "__main__":
    main()
