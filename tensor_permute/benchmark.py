import time
from dataclasses import dataclass

import numpy as np

from .buffers import make_input
from .config import DEFAULT_ORDER, NUM_REPS, LaunchConfig
from .indexing import permuted_dims
from .parallel import permute_parallel
from .sequential import permute_sequential
from .verifier import verify


@dataclass
class BenchmarkRecord:
    name: str
    check: bool
    ms: float
    speedup: float
    bandwidth: float


####################################################################
def benchmark(fn, n_reps, n_crop):
    """Run fn n_reps+n_crop times, drop the first n_crop timings, return (result, mean ms)."""
    if n_reps < 1:
        raise ValueError(f"n_reps must be at least 1, got {n_reps}")
    if n_crop < 0:
        raise ValueError(f"n_crop must not be negative, got {n_crop}")
    times = list()
    res = None
    for _ in range(n_reps+n_crop):
        start = time.perf_counter()
        res = fn()
        end = time.perf_counter()
        times.append((end-start)*1e3)  # milliseconds
    return res, float(np.mean(times[n_crop:]))


def bandwidth_gbs(n_elements, itemsize, ms):
    # one read and one write per element
    if ms <= 0:
        return 0.0
    return 2 * n_elements * itemsize / (ms * 1e-3) / 1e9


####################################################################
def run_benchmarks(dims, config=None, n_reps=NUM_REPS, order=DEFAULT_ORDER, seed=None):
    if config is None:
        config = LaunchConfig()
    if n_reps < 1:
        raise ValueError(f"n_reps must be at least 1, got {n_reps}")
    n_crop = max(1, n_reps // 10)
    input = make_input(dims, seed=seed)
    size = input.size
    itemsize = input.itemsize

    def run_sequential():
        out = np.empty_like(input)
        permute_sequential(input, out, *dims, order=order)
        return out

    def run_parallel():
        out = np.empty_like(input)
        permute_parallel(input, out, *dims, order=order, config=config)
        return out

    def run_numpy():
        axes = tuple(a-1 for a in order)
        return np.transpose(input.reshape(dims), axes).copy().ravel()

    # the python loop is slow, time it once
    gold, time_seq = benchmark(run_sequential, 1, 0)
    records = [BenchmarkRecord("sequential", True, time_seq, 1.0, bandwidth_gbs(size, itemsize, time_seq))]
    for name, fn in ((f"parallel[{config.backend}]", run_parallel), ("numpy.transpose", run_numpy)):
        res, ms = benchmark(fn, n_reps, n_crop)
        check = verify(gold, res).ok
        speedup = time_seq / ms if ms > 0 else float("inf")
        records.append(BenchmarkRecord(name, check, ms, speedup, bandwidth_gbs(size, itemsize, ms)))
    return records


def print_records(records):
    for r in records:
        print(f'{r.name:>20}: {r.ms:10.4f} ms  {r.speedup:9.2f}x  {r.bandwidth:8.4f} GB/s  check: {"OK" if r.check else "FAIL"}')


####################################################################
def plot_bandwidth(records, dims, path, order=DEFAULT_ORDER):
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    col = ['tab:green','tab:cyan','tab:blue','tab:purple','tab:pink','tab:red','tab:orange','tab:brown']
    dim = "x".join(str(d) for d in dims)
    oDim = "x".join(str(d) for d in permuted_dims(dims, order))
    fig = plt.figure(figsize=(10,5))
    inc = 0.9
    pos = np.arange(0, len(records) * inc, inc)[:len(records)]
    for i, r in enumerate(records):
        plt.bar(pos[i], r.bandwidth, color=col[i % len(col)])
    plt.xticks([])
    plt.ylabel('Bandwidth (GB/s)')
    plt.xlabel(f'{dim} -> {oDim}', labelpad=20.0)
    plt.title(f"Dimension: {dim}")
    plt.legend(labels=[r.name for r in records])
    plt.grid()
    plt.tight_layout()
    plt.savefig(path, dpi=100)
    plt.close(fig)
