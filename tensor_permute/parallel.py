from concurrent.futures import ThreadPoolExecutor

import numpy as np

from . import cuda_accelerations as acc
from .buffers import check_buffers
from .config import DEFAULT_ORDER, LaunchConfig
from .indexing import check_dims, decompose, recompose, validate_order


###############################################################################
def permute_block(blockIdx, blockDim, input, output, dims, order, size):
    """
    One block of tasks. Each task owns one flat position `idx`; the block
    evaluates the per-task arithmetic for all of its task ids at once.
    """
    threadIdx = np.arange(blockDim, dtype=np.int64)
    idx = blockIdx * blockDim + threadIdx
    # tasks past the end of the tensor do nothing
    idx = idx[idx < size]
    if idx.size == 0:
        return
    odx = recompose(decompose(idx, dims), dims, order)
    output[odx] = input[idx]


def launch_threads(input, output, dims, order, size, config):
    blockDim = config.block_dim
    gridDim  = config.grid_dim(size)
    with ThreadPoolExecutor(max_workers=config.num_workers) as pool:
        futures = [
            pool.submit(permute_block, b, blockDim, input, output, dims, order, size)
            for b in range(gridDim)
        ]
        # join: every block finishes before output is handed back
        for f in futures:
            f.result()


###############################################################################
def permute_parallel(input, output, d1, d2, d3, d4, order=DEFAULT_ORDER, config=None):
    """
    Data-parallel permutation, one task per element, dispatched as a grid of
    config.block_dim-sized blocks on the backend named by config.backend.
    Returns only after all tasks have completed.
    """
    if config is None:
        config = LaunchConfig()
    dims, size = check_dims(d1, d2, d3, d4)
    order = validate_order(order)
    check_buffers(input, output, size)

    if config.backend == "threads":
        launch_threads(input, output, dims, order, size, config)
    elif config.backend == "cupy":
        acc.permute_cupy(input, output, dims, order, config)
    elif config.backend == "pycuda":
        acc.permute_pycuda(input, output, dims, order, config)


def permute(input, output, d1, d2, d3, d4, order=DEFAULT_ORDER, config=None):
    permute_parallel(input, output, d1, d2, d3, d4, order=order, config=config)


def describe_device(config):
    if config.backend == "threads":
        workers = config.num_workers if config.num_workers is not None else "default"
        return f"CPU thread pool (workers: {workers}, block: {config.block_dim})"
    name = acc.device_name(config.backend, config.device)
    return f"{config.backend} device {config.device}: {name} (block: {config.block_dim})"
