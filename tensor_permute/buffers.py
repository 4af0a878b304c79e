import numpy as np


###############################################################################
def make_input(dims, kind="random", seed=None):
    """Fill a flat float32 input buffer of prod(dims) elements."""
    size = int(np.prod(dims, dtype=np.int64))
    if kind == "random":
        rng = np.random.default_rng(seed)
        return rng.uniform(low=0, high=1, size=size).astype(np.float32)
    if kind == "arange":
        return np.arange(0, size, dtype=np.float32)
    raise ValueError(f"unknown input kind {kind!r}, expected 'random' or 'arange'")


def check_buffers(input, output, size):
    if not isinstance(input, np.ndarray) or not isinstance(output, np.ndarray):
        raise TypeError(
            f"buffers must be flat numpy arrays, got {type(input).__name__} and {type(output).__name__}"
        )
    if input.ndim != 1 or output.ndim != 1:
        raise ValueError(f"buffers must be flat, got shapes {input.shape} and {output.shape}")
    if input.size != size or output.size != size:
        raise ValueError(f"buffers must hold {size} elements, got {input.size} and {output.size}")
    if np.shares_memory(input, output):
        raise ValueError("output must not alias input")
