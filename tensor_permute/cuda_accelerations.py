import atexit

import numpy as np

from .indexing import output_weights


class BackendUnavailableError(RuntimeError):
    """Raised when a GPU backend's library or device cannot be used."""


###############################################################################
# One thread per element. Axis weights in the permuted layout are computed on
# the host (output_weights) so the kernel serves every axis order.
PERMUTE_KERNEL = r"""
extern "C" __global__
void permute4d(const float* input, float* output, long long n,
               long long d1, long long d2, long long d3, long long d4,
               long long w1, long long w2, long long w3, long long w4)
{
    long long idx = (long long)blockIdx.x * blockDim.x + threadIdx.x;
    if (idx >= n)
        return;
    long long i1 = (idx / (d2*d3*d4)) % d1;
    long long i2 = (idx / (d3*d4)) % d2;
    long long i3 = (idx / d4) % d3;
    long long i4 = idx % d4;
    output[i1*w1 + i2*w2 + i3*w3 + i4*w4] = input[idx];
}
"""
KERNEL_NAME = "permute4d"


def kernel_args(dims, order, size):
    w = output_weights(dims, order)
    return [np.int64(size)] + [np.int64(d) for d in dims] + [np.int64(x) for x in w]


def check_float32(input, output):
    if input.dtype != np.float32 or output.dtype != np.float32:
        raise ValueError(f"GPU backends take float32 buffers, got {input.dtype} and {output.dtype}")


###############################################################################
def check_device(device, count):
    if count == 0:
        raise BackendUnavailableError("no CUDA device found")
    if not 0 <= device < count:
        raise BackendUnavailableError(f"CUDA device {device} does not exist, found {count} device(s)")


# device ordinal -> compiled RawKernel, so repeated launches skip NVRTC
_CUPY_KERNELS = dict()


def import_cupy(device=0):
    try:
        import cupy as cp
    except ImportError as e:
        raise BackendUnavailableError("the cupy backend needs the cupy package") from e
    try:
        count = cp.cuda.runtime.getDeviceCount()
    except cp.cuda.runtime.CUDARuntimeError as e:
        raise BackendUnavailableError(f"no usable CUDA runtime: {e}") from e
    check_device(device, count)
    return cp


def cupy_kernel(cp, device):
    kernel = _CUPY_KERNELS.get(device)
    if kernel is None:
        kernel = cp.RawKernel(PERMUTE_KERNEL, KERNEL_NAME)
        _CUPY_KERNELS[device] = kernel
    return kernel


def permute_cupy(input, output, dims, order, config):
    cp = import_cupy(config.device)
    check_float32(input, output)
    size = input.size
    blockDim = (config.block_dim, 1, 1)
    gridDim  = (config.grid_dim(size), 1, 1)
    try:
        with cp.cuda.Device(config.device):
            kernel = cupy_kernel(cp, config.device)
            d_input  = cp.asarray(input)
            d_output = cp.empty_like(d_input)
            kernel(gridDim, blockDim, tuple([d_input, d_output] + kernel_args(dims, order, size)))
            cp.cuda.runtime.deviceSynchronize()
            output[:] = cp.asnumpy(d_output)
    except (cp.cuda.runtime.CUDARuntimeError, cp.cuda.driver.CUDADriverError) as e:
        raise BackendUnavailableError(f"cupy launch failed on device {config.device}: {e}") from e


###############################################################################
# device ordinal -> (context, kernel); contexts are created once and detached at exit
_PYCUDA_STATE = dict()


def import_pycuda(device=0):
    try:
        import pycuda.driver as cuda
        from pycuda.compiler import SourceModule
    except ImportError as e:
        raise BackendUnavailableError("the pycuda backend needs the pycuda package") from e
    try:
        cuda.init()
        count = cuda.Device.count()
    except cuda.Error as e:
        raise BackendUnavailableError(f"no usable CUDA driver: {e}") from e
    check_device(device, count)
    return cuda, SourceModule


def detach_pycuda_contexts():
    for ctx, _ in _PYCUDA_STATE.values():
        ctx.detach()
    _PYCUDA_STATE.clear()


def pycuda_kernel(cuda, SourceModule, device):
    state = _PYCUDA_STATE.get(device)
    if state is None:
        ctx = cuda.Device(device).make_context()
        try:
            mod = SourceModule(PERMUTE_KERNEL, no_extern_c=True)
            kernel = mod.get_function(KERNEL_NAME)
        finally:
            ctx.pop()
        if not _PYCUDA_STATE:
            atexit.register(detach_pycuda_contexts)
        state = (ctx, kernel)
        _PYCUDA_STATE[device] = state
    return state


def permute_pycuda(input, output, dims, order, config):
    cuda, SourceModule = import_pycuda(config.device)
    check_float32(input, output)
    size = input.size
    blockDim = (config.block_dim, 1, 1)
    gridDim  = (config.grid_dim(size), 1, 1)

    try:
        ctx, kernel = pycuda_kernel(cuda, SourceModule, config.device)
    except cuda.Error as e:
        raise BackendUnavailableError(f"pycuda setup failed on device {config.device}: {e}") from e

    ctx.push()
    d_input = d_output = None
    try:
        # --- Allocate GPU device memory
        d_input  = cuda.mem_alloc(input.nbytes)
        d_output = cuda.mem_alloc(output.nbytes)

        # --- Memcopy from host to device
        cuda.memcpy_htod(d_input, np.ascontiguousarray(input))

        # --- Execute kernel
        kernel(d_input, d_output, *kernel_args(dims, order, size), block=blockDim, grid=gridDim)
        cuda.Context.synchronize()

        # --- Copy results from device to host
        h_output = np.empty_like(output)
        cuda.memcpy_dtoh(h_output, d_output)
        output[:] = h_output
    except cuda.Error as e:
        raise BackendUnavailableError(f"pycuda launch failed on device {config.device}: {e}") from e
    finally:
        if d_input is not None:
            d_input.free()
        if d_output is not None:
            d_output.free()
        ctx.pop()


###############################################################################
def device_name(backend, device=0):
    if backend == "cupy":
        cp = import_cupy(device)
        props = cp.cuda.runtime.getDeviceProperties(device)
        name = props["name"]
        return name.decode() if isinstance(name, bytes) else name
    cuda, _ = import_pycuda(device)
    return cuda.Device(device).name()
