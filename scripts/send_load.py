#!/usr/bin/env python
"""Simple load generator for the gateway."""

from __future__ import annotations

import argparse
import time
from statistics import median
from typing import Dict, List

import numpy as np
import requests

IMAGE_SIZE = 784


def random_payloads(count: int, seed: int) -> List[Dict[str, List[float]]]:
    rng = np.random.default_rng(seed)
    return [{"image": rng.random(IMAGE_SIZE).tolist()} for _ in range(count)]


def p95(values: List[float]) -> float:
    if not values:
        return 0.0
    idx = int(0.95 * len(values)) - 1
    idx = max(idx, 0)
    return sorted(values)[idx]


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--gateway", default="http://localhost:8080")
    parser.add_argument("--duration", type=int, default=30)
    parser.add_argument("--rps", type=int, default=10)
    parser.add_argument("--distinct-payloads", type=int, default=32)
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    payloads = random_payloads(args.distinct_payloads, args.seed)
    latencies: List[float] = []
    errors = 0
    timeouts = 0
    total = 0
    start = time.time()
    idx = 0
    while time.time() - start < args.duration:
        payload = payloads[idx % len(payloads)]
        idx += 1
        t0 = time.perf_counter()
        try:
            resp = requests.post(f"{args.gateway}/predict", json=payload, timeout=10)
            if resp.status_code == 503:
                timeouts += 1
                errors += 1
            elif resp.status_code != 200:
                errors += 1
            else:
                latencies.append(time.perf_counter() - t0)
        except requests.RequestException:
            errors += 1
        total += 1
        sleep_time = max(0, (1 / args.rps) - (time.perf_counter() - t0))
        time.sleep(sleep_time)

    print(f"Sent {total} requests, errors={errors} (service unavailable={timeouts})")
    if latencies:
        print(f"Latency p50: {median(latencies)*1000:.2f} ms, p95: {p95(latencies)*1000:.2f} ms")
    if total:
        print(f"Error rate: {errors/total*100:.2f}%")


if __name__ == "__main__":
    main()
