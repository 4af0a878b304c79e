import numpy as np
import pytest

from tensor_permute import cuda_accelerations as acc
from tensor_permute.buffers import make_input
from tensor_permute.config import LaunchConfig
from tensor_permute.parallel import permute_parallel
from tensor_permute.sequential import permute_sequential


def require(importer):
    try:
        importer()
    except acc.BackendUnavailableError as e:
        pytest.skip(str(e))


def test_kernel_args():
    args = acc.kernel_args((2, 3, 4, 5), (4, 3, 1, 2), 120)
    # n, d1..d4, then output weights of each input axis in (d4,d3,d1,d2) layout
    assert [int(a) for a in args] == [120, 2, 3, 4, 5, 3, 1, 6, 24]
    assert all(isinstance(a, np.int64) for a in args)


def test_kernel_source_guards_bounds():
    assert "if (idx >= n)" in acc.PERMUTE_KERNEL
    assert acc.KERNEL_NAME in acc.PERMUTE_KERNEL


def test_gpu_backends_need_float32():
    with pytest.raises(ValueError):
        acc.check_float32(np.zeros(4), np.zeros(4))
    acc.check_float32(np.zeros(4, dtype=np.float32), np.zeros(4, dtype=np.float32))


@pytest.mark.parametrize("backend, importer", [("cupy", acc.import_cupy), ("pycuda", acc.import_pycuda)])
@pytest.mark.parametrize("dims", [(2, 2, 2, 2), (3, 5, 7, 11), (1, 1, 1, 5)])
def test_gpu_matches_sequential(backend, importer, dims):
    require(importer)
    input = make_input(dims, seed=0)
    res_seq = np.empty_like(input)
    res_gpu = np.empty_like(input)
    permute_sequential(input, res_seq, *dims)
    permute_parallel(input, res_gpu, *dims, config=LaunchConfig(backend=backend, block_dim=32))
    np.testing.assert_array_equal(res_seq, res_gpu)


def test_check_device():
    acc.check_device(0, 1)
    acc.check_device(3, 4)
    with pytest.raises(acc.BackendUnavailableError, match="no CUDA device"):
        acc.check_device(0, 0)
    with pytest.raises(acc.BackendUnavailableError, match="device 2"):
        acc.check_device(2, 2)


class FakeError(Exception):
    pass


class FakeAlloc:
    def __init__(self, freed):
        self.freed = freed

    def free(self):
        self.freed.append(self)


class FakeContext:
    def __init__(self):
        self.pushed = 0
        self.popped = 0

    def push(self):
        self.pushed += 1

    def pop(self):
        self.popped += 1


class FakeDevice:
    def __init__(self, contexts):
        self.contexts = contexts

    def make_context(self):
        ctx = FakeContext()
        self.contexts.append(ctx)
        return ctx


class FakeCuda:
    Error = FakeError

    def __init__(self):
        self.freed = list()
        self.contexts = list()

    def Device(self, device):
        return FakeDevice(self.contexts)

    def mem_alloc(self, nbytes):
        return FakeAlloc(self.freed)

    def memcpy_htod(self, dst, src):
        raise FakeError("copy failed")


class FakeModule:
    def get_function(self, name):
        return name


def test_pycuda_frees_device_memory_on_error(monkeypatch):
    cuda = FakeCuda()
    ctx = FakeContext()
    monkeypatch.setattr(acc, "import_pycuda", lambda device=0: (cuda, None))
    monkeypatch.setattr(acc, "pycuda_kernel", lambda cuda, SourceModule, device: (ctx, None))
    input = np.zeros(16, dtype=np.float32)
    output = np.empty_like(input)
    with pytest.raises(acc.BackendUnavailableError, match="copy failed"):
        acc.permute_pycuda(input, output, (2, 2, 2, 2), (4, 3, 1, 2), LaunchConfig(backend="pycuda"))
    assert len(cuda.freed) == 2
    assert ctx.pushed == 1
    assert ctx.popped == 1


def test_pycuda_compiles_once_per_device(monkeypatch):
    cuda = FakeCuda()
    compiled = list()
    registered = list()

    def source_module(src, no_extern_c):
        compiled.append(src)
        return FakeModule()

    monkeypatch.setattr(acc, "_PYCUDA_STATE", dict())
    monkeypatch.setattr(acc.atexit, "register", registered.append)
    first = acc.pycuda_kernel(cuda, source_module, 0)
    second = acc.pycuda_kernel(cuda, source_module, 0)
    assert first is second
    assert len(compiled) == 1
    assert len(cuda.contexts) == 1
    # context is left inactive between launches
    assert cuda.contexts[0].popped == 1
    assert registered == [acc.detach_pycuda_contexts]
    acc.pycuda_kernel(cuda, source_module, 1)
    assert len(compiled) == 2
    assert len(registered) == 1


def test_cupy_kernel_cached(monkeypatch):
    built = list()

    class FakeCupy:
        @staticmethod
        def RawKernel(src, name):
            built.append(name)
            return object()

    monkeypatch.setattr(acc, "_CUPY_KERNELS", dict())
    first = acc.cupy_kernel(FakeCupy, 0)
    assert acc.cupy_kernel(FakeCupy, 0) is first
    assert built == [acc.KERNEL_NAME]
