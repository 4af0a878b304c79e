import argparse

import numpy as np

from . import config as cfg
from .benchmark import plot_bandwidth, print_records, run_benchmarks
from .buffers import make_input
from .cuda_accelerations import BackendUnavailableError
from .indexing import check_dims, permuted_dims
from .parallel import describe_device, permute_parallel
from .sequential import permute_sequential
from .verifier import VerificationMismatch, verify_or_raise


EXIT_OK       = 0
EXIT_MISMATCH = 1
EXIT_SETUP    = 2


def print_debug(obj, debug=False):
    if debug:
        print(obj)


####################################################################
def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="tensor-permute",
        description="Permute a flat 4D tensor (d1,d2,d3,d4) -> (d4,d3,d1,d2) and check the parallel result against the sequential one.",
    )
    parser.add_argument("--dims", type=int, nargs=4, default=list(cfg.DIMENSION),
                        metavar=("D1", "D2", "D3", "D4"), help="input extents")
    parser.add_argument("--backend", type=str, default="threads", choices=cfg.BACKENDS,
                        help="parallel execution backend")
    parser.add_argument("--block-dim", type=int, default=cfg.BLOCK_DIM, help="tasks per block")
    parser.add_argument("--workers", type=int, default=None, help="thread-pool size for the threads backend")
    parser.add_argument("--device", type=int, default=0, help="CUDA device ordinal")
    parser.add_argument("--seed", type=int, default=None, help="seed for the random input")
    parser.add_argument("--tolerance", type=float, default=cfg.TOLERANCE, help="verifier tolerance")
    parser.add_argument("--benchmark", action="store_true", help="time sequential, parallel and numpy")
    parser.add_argument("--reps", type=int, default=cfg.NUM_REPS, help="benchmark repetitions")
    parser.add_argument("--plot", type=str, default=None, help="save a bandwidth chart to this path")
    parser.add_argument("--debug", action="store_true", help="print the buffers")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    try:
        dims, size = check_dims(*args.dims)
        config = cfg.LaunchConfig(
            backend=args.backend,
            block_dim=args.block_dim,
            num_workers=args.workers,
            device=args.device,
        )
        if args.reps < 1:
            raise ValueError(f"--reps must be at least 1, got {args.reps}")
        device = describe_device(config)
    except (ValueError, OverflowError, BackendUnavailableError) as e:
        print(f"Setup error: {e}")
        return EXIT_SETUP

    print('iDim:   ', dims)
    print('oDim:   ', permuted_dims(dims))
    print('N:      ', size)
    print('Device: ', device)

    input = make_input(dims, seed=args.seed)
    res_seq = np.empty_like(input)
    res_par = np.empty_like(input)
    print_debug(f"\ninput:\n{input}", args.debug)

    try:
        permute_sequential(input, res_seq, *dims)
        permute_parallel(input, res_par, *dims, config=config)
    except BackendUnavailableError as e:
        print(f"Setup error: {e}")
        return EXIT_SETUP
    print_debug(f"\nsequential:\n{res_seq}", args.debug)
    print_debug(f"\nparallel:\n{res_par}", args.debug)

    try:
        res = verify_or_raise(res_seq, res_par, args.tolerance)
    except VerificationMismatch as e:
        print('Check: FAIL')
        print(f'   index {e.index}: sequential {e.expected}, parallel {e.actual}')
        return EXIT_MISMATCH
    print(f'Check: OK (max abs diff {res.max_abs_diff})')

    if args.benchmark or args.plot:
        print(f'\nBenchmark ({args.reps} reps):')
        records = run_benchmarks(dims, config, n_reps=args.reps, seed=args.seed)
        print_records(records)
        if args.plot:
            plot_bandwidth(records, dims, args.plot)
            print(f'Saved {args.plot}')
        if not all(r.check for r in records):
            print('Check: FAIL')
            return EXIT_MISMATCH

    return EXIT_OK
