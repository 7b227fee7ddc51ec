#!/usr/bin/env python
"""
Queue Benchmark Tool for redqueue

Measures admission latency and end-to-end dispatch throughput for the
InMemoryStore and RedisStore adapters.

Usage:
    pip install -e ".[tools]"
    python tools/benchmark_queue.py
    python tools/benchmark_queue.py --jobs 5000 --concurrency 1,8,32
    python tools/benchmark_queue.py --adapters memory,redis --redis-url redis://localhost:6379/15
"""

from __future__ import annotations

import asyncio
import statistics
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from time import perf_counter
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from redqueue import InMemoryStore, Queue, QueueStorePort, RedisStore

app = typer.Typer(
    help="Benchmark redqueue store adapters",
    add_completion=False,
)


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class BenchmarkConfig:
    """Configuration for benchmark runs."""

    jobs: int = 1000
    concurrency_levels: list[int] = field(default_factory=lambda: [1, 10])
    payload_size: int = 1000
    adapters: list[str] = field(default_factory=lambda: ["memory"])
    redis_url: str = "redis://localhost:6379/15"


@dataclass
class BenchmarkResult:
    """Results from a single benchmark run."""

    adapter_name: str
    operation: str
    total_ops: int
    total_time: float
    latencies: list[float]  # seconds

    @property
    def ops_per_sec(self) -> float:
        return self.total_ops / self.total_time if self.total_time > 0 else 0.0

    def percentile(self, q: float) -> float:
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        return ordered[min(int(len(ordered) * q), len(ordered) - 1)]

    @property
    def p50(self) -> float:
        return statistics.median(self.latencies) if self.latencies else 0.0

    @staticmethod
    def format_latency_ms(seconds: float) -> str:
        return f"{seconds * 1000:.2f}ms"


# ---------------------------------------------------------------------------
# Core Benchmark Functions
# ---------------------------------------------------------------------------


async def benchmark_add(queue: Queue[Any], n: int, payload: str) -> list[float]:
    """Admit N jobs sequentially; returns the latency of each add()."""
    latencies = []
    for _ in range(n):
        start = perf_counter()
        await queue.add(payload)
        latencies.append(perf_counter() - start)
    return latencies


async def benchmark_process(
    queue: Queue[Any],
    n: int,
    concurrency: int,
    payload: str,
) -> list[float]:
    """
    Admit N jobs, then drain them with process(concurrency).

    Returns the admission-to-completion latency of every job.
    """
    admitted: dict[str, float] = {}
    latencies: list[float] = []
    drained = asyncio.Event()

    def on_succeeded(job_id: str) -> None:
        latencies.append(perf_counter() - admitted[job_id])
        if len(latencies) == n:
            drained.set()

    queue.on("succeeded", on_succeeded)
    for _ in range(n):
        job_id = await queue.add(payload)
        if job_id is not None:
            admitted[job_id] = perf_counter()

    queue.process(lambda data: None, concurrency=concurrency)
    await drained.wait()
    return latencies


def create_store(adapter_name: str, config: BenchmarkConfig) -> QueueStorePort:
    if adapter_name == "memory":
        return InMemoryStore()
    if adapter_name == "redis":
        return RedisStore.from_url(
            config.redis_url, max_connections=max(config.concurrency_levels) + 4
        )
    raise ValueError(f"Unknown adapter: {adapter_name}")


def new_queue(store: QueueStorePort) -> Queue[Any]:
    return Queue(
        store,
        f"bench-{uuid.uuid4().hex[:8]}",
        keep_on_success=False,
        poll_timeout=timedelta(milliseconds=100),
    )


# ---------------------------------------------------------------------------
# Benchmark Runner
# ---------------------------------------------------------------------------


async def run_adapter_benchmark(
    adapter_name: str,
    config: BenchmarkConfig,
) -> list[BenchmarkResult]:
    """Run every scenario against a single store adapter."""
    results = []
    payload = "x" * config.payload_size
    store = create_store(adapter_name, config)

    try:
        queue = new_queue(store)
        start = perf_counter()
        latencies = await benchmark_add(queue, config.jobs, payload)
        results.append(
            BenchmarkResult(
                adapter_name=adapter_name,
                operation="add",
                total_ops=config.jobs,
                total_time=perf_counter() - start,
                latencies=latencies,
            )
        )
        await queue.destroy()

        for concurrency in config.concurrency_levels:
            async with new_queue(store) as queue:
                start = perf_counter()
                latencies = await benchmark_process(
                    queue, config.jobs, concurrency, payload
                )
                total_time = perf_counter() - start
            await queue.destroy()
            results.append(
                BenchmarkResult(
                    adapter_name=adapter_name,
                    operation=f"process-c{concurrency}",
                    total_ops=len(latencies),
                    total_time=total_time,
                    latencies=latencies,
                )
            )
    finally:
        if isinstance(store, RedisStore):
            await store.close()

    return results


# ---------------------------------------------------------------------------
# Result Formatting
# ---------------------------------------------------------------------------


def format_results(results: list[BenchmarkResult]) -> None:
    console = Console()
    console.print()
    console.print(
        Panel("[bold cyan]Queue Benchmark Results[/bold cyan]", expand=False)
    )

    by_adapter: dict[str, list[BenchmarkResult]] = {}
    for result in results:
        by_adapter.setdefault(result.adapter_name, []).append(result)

    for adapter_name, adapter_results in by_adapter.items():
        console.print()
        console.print(f"[bold yellow]Adapter: {adapter_name}[/bold yellow]")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Operation", style="cyan", width=15)
        table.add_column("Ops/sec", justify="right", style="green")
        table.add_column("P50", justify="right")
        table.add_column("P95", justify="right")
        table.add_column("P99", justify="right")

        for result in adapter_results:
            table.add_row(
                result.operation,
                f"{result.ops_per_sec:.1f}",
                result.format_latency_ms(result.p50),
                result.format_latency_ms(result.percentile(0.95)),
                result.format_latency_ms(result.percentile(0.99)),
            )
        console.print(table)

    console.print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@app.command()
def main(
    jobs: int = typer.Option(1000, "--jobs", "-n", help="Jobs per scenario"),
    concurrency: str = typer.Option(
        "1,10", "--concurrency", "-c", help="Comma-separated process() concurrency levels"
    ),
    adapters: str = typer.Option(
        "memory", "--adapters", "-a", help="Comma-separated adapters: memory, redis"
    ),
    redis_url: str = typer.Option(
        "redis://localhost:6379/15", "--redis-url", help="Redis server for the redis adapter"
    ),
) -> None:
    """
    Benchmark redqueue store adapters.

    Scenarios: sequential add(), then admit-and-drain with process() at each
    concurrency level. Redis keys are namespaced per run and destroyed after.
    """
    config = BenchmarkConfig(
        jobs=jobs,
        concurrency_levels=[int(c) for c in concurrency.split(",")],
        adapters=[a.strip() for a in adapters.split(",")],
        redis_url=redis_url,
    )

    console = Console(stderr=True)
    all_results = []
    for adapter_name in config.adapters:
        try:
            all_results.extend(asyncio.run(run_adapter_benchmark(adapter_name, config)))
        except Exception as e:
            console.print(f"[red]Error benchmarking {adapter_name}: {e}[/red]")

    if not all_results:
        console.print("[red]No benchmark results to display.[/red]")
        raise typer.Exit(code=1)
    format_results(all_results)


if __name__ == "__main__":
    app()
