# Expose main components for easy access
from .config import DEFAULT_ORDER, LaunchConfig
from .indexing import decompose, recompose, linear, permuted_dims, permuted_index
from .sequential import permute_sequential
from .parallel import permute, permute_parallel
from .verifier import verify, VerificationMismatch, VerificationResult
from .cuda_accelerations import BackendUnavailableError
