from __future__ import annotations

import argparse
import asyncio
import json
import statistics
import time
from pathlib import Path

from novagfx.config import load_config
from novagfx.designer import InMemoryDesigner
from novagfx.runtime.store import RuntimeStore


async def _run_single(
    store: RuntimeStore,
    designer: InMemoryDesigner,
    document: dict,
    semaphore: asyncio.Semaphore,
    durations: list[float],
    errors: list[str],
) -> None:
    async with semaphore:
        start = time.monotonic()
        try:
            result = await store.dispatch_graph(
                str(document.get("event_type") or "click"),
                document.get("element_id"),
                document.get("nodes") or [],
                document.get("edges") or [],
                designer,
            )
            durations.append(time.monotonic() - start)
            errors.extend(error.message for error in result.errors)
        except Exception as exc:  # pragma: no cover - diagnostic helper
            errors.append(str(exc))


async def run_load_test(document: dict, concurrency: int, total_requests: int) -> dict[str, float]:
    """Overlapping dispatches share one store, so walks interleave at their suspension points."""
    store = RuntimeStore(load_config())
    store.initialize_app(document.get("app") or {})
    for name, value in (document.get("state") or {}).items():
        store.set_state(name, value)
    designer = InMemoryDesigner.from_snapshot(document.get("designer"))
    durations: list[float] = []
    errors: list[str] = []
    semaphore = asyncio.Semaphore(concurrency)
    tasks = [
        asyncio.create_task(_run_single(store, designer, document, semaphore, durations, errors))
        for _ in range(total_requests)
    ]
    await asyncio.gather(*tasks)
    durations_sorted = sorted(durations)
    p95 = durations_sorted[int(0.95 * len(durations_sorted))] if durations_sorted else 0.0
    return {
        "total": total_requests,
        "errors": len(errors),
        "avg_latency_seconds": statistics.mean(durations) if durations else 0.0,
        "p95_latency_seconds": p95,
        "designer_calls": len(designer.calls),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Simple node graph load tester.")
    parser.add_argument("--graph", required=True, help="Path to a JSON graph document")
    parser.add_argument("--concurrency", type=int, default=4, help="Number of concurrent dispatches")
    parser.add_argument("--requests", type=int, default=20, help="Total number of dispatches")
    args = parser.parse_args()

    document = json.loads(Path(args.graph).read_text(encoding="utf-8"))
    summary = asyncio.run(run_load_test(document, args.concurrency, args.requests))
    print("Load test summary:")
    for key, value in summary.items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    main()
