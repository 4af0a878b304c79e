import numpy as np

from .config import DEFAULT_ORDER


INDEX_MAX = np.iinfo(np.int64).max


###############################################################################
def check_dims(d1, d2, d3, d4):
    """Validate the four extents and return (dims, N)."""
    dims = (d1, d2, d3, d4)
    for k, d in enumerate(dims):
        if isinstance(d, bool) or not isinstance(d, (int, np.integer)):
            raise ValueError(f"d{k+1} must be an integer, got {d!r}")
        if d <= 0:
            raise ValueError(f"d{k+1} must be positive, got {d}")
    dims = tuple(int(d) for d in dims)
    size = 1
    for d in dims:
        size *= d
    if size > INDEX_MAX:
        raise OverflowError(f"{dims} has {size} elements, more than int64 can index")
    return dims, size


def validate_order(order):
    order = tuple(int(a) for a in order)
    if sorted(order) != [1, 2, 3, 4]:
        raise ValueError(f"order must be a permutation of (1, 2, 3, 4), got {order}")
    return order


def permuted_dims(dims, order=DEFAULT_ORDER):
    return tuple(dims[a-1] for a in order)


###############################################################################
def strides(dims):
    """Row-major weights: the product of all extents after each axis."""
    res = list()
    w = 1
    for d in reversed(dims):
        res.append(w)
        w *= d
    return tuple(reversed(res))


def linear(coords, dims):
    return sum(i * w for i, w in zip(coords, strides(dims)))


def decompose(idx, dims):
    """
    Flat row-major position -> coordinate tuple.
    Works on a python int or on a numpy integer array of positions.
    """
    return tuple((idx // w) % d for w, d in zip(strides(dims), dims))


def recompose(coords, dims, order=DEFAULT_ORDER):
    """
    Coordinate tuple (input axis order) -> flat position in the permuted layout.
    Output row-major weights are taken from the output extents in output order,
    then each output slot picks the input coordinate with the matching label.
    """
    oDim = permuted_dims(dims, order)
    return sum(coords[a-1] * w for a, w in zip(order, strides(oDim)))


def permuted_index(idx, dims, order=DEFAULT_ORDER):
    return recompose(decompose(idx, dims), dims, order)


def output_weights(dims, order=DEFAULT_ORDER):
    """
    Weight of each input axis in the permuted layout, so that
    recompose(coords) == sum(coords[k] * w[k]). Precomputed once per launch.
    """
    oStride = strides(permuted_dims(dims, order))
    w = [0] * len(dims)
    for j, a in enumerate(order):
        w[a-1] = oStride[j]
    return tuple(w)
