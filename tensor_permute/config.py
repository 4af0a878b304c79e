from dataclasses import dataclass
from math import ceil
from typing import Optional


####################################################################
NUM_REPS  = 100
NUM_CROP  = ceil(NUM_REPS * 0.1)
DIMENSION = (8, 16, 4, 12)
# DIMENSION = (2, 2, 2, 2)
# DIMENSION = (184, 128, 3, 1)
TOLERANCE = 1e-5
BLOCK_DIM = 256

# Output axis order (1-based labels): (d1,d2,d3,d4) -> (d4,d3,d1,d2)
DEFAULT_ORDER = (4, 3, 1, 2)

BACKENDS = ("threads", "cupy", "pycuda")
GPU_BACKENDS = ("cupy", "pycuda")
# CUDA limit on threads per block
MAX_GPU_BLOCK_DIM = 1024


####################################################################
@dataclass(frozen=True)
class LaunchConfig:
    backend: str = "threads"
    block_dim: int = BLOCK_DIM
    num_workers: Optional[int] = None
    device: int = 0

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(f"unknown backend {self.backend!r}, expected one of {BACKENDS}")
        if self.block_dim <= 0:
            raise ValueError(f"block_dim must be positive, got {self.block_dim}")
        if self.backend in GPU_BACKENDS and self.block_dim > MAX_GPU_BLOCK_DIM:
            raise ValueError(f"block_dim must be at most {MAX_GPU_BLOCK_DIM} on {self.backend}, got {self.block_dim}")
        if self.device < 0:
            raise ValueError(f"device must not be negative, got {self.device}")
        if self.num_workers is not None and self.num_workers <= 0:
            raise ValueError(f"num_workers must be positive, got {self.num_workers}")

    def grid_dim(self, n):
        # integer ceil, n can exceed float precision
        return (n + self.block_dim - 1) // self.block_dim
