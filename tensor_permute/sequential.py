from .buffers import check_buffers
from .config import DEFAULT_ORDER
from .indexing import check_dims, decompose, recompose, validate_order


###############################################################################
def permute_sequential(input, output, d1, d2, d3, d4, order=DEFAULT_ORDER):
    """
    Reference permutation: one decompose/recompose/copy per element, in order.
    `input` and `output` are caller-owned flat buffers of d1*d2*d3*d4 elements.
    """
    dims, size = check_dims(d1, d2, d3, d4)
    order = validate_order(order)
    check_buffers(input, output, size)
    for idx in range(size):
        odx = recompose(decompose(idx, dims), dims, order)
        output[odx] = input[idx]
