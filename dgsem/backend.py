"""
Backend dispatcher for dgsem.

Allows switching between the sequential Numba reference (host) and the JAX
accelerator pipeline (CPU/GPU) via environment variable.

Usage:
    # Default: Numba reference backend
    python benchmark_1d.py

    # JAX backend (auto-detect GPU)
    DGSEM_BACKEND=jax python benchmark_1d.py

    # Force specific backend
    DGSEM_BACKEND=numba python benchmark_1d.py
    DGSEM_BACKEND=jax-cpu python benchmark_1d.py
    DGSEM_BACKEND=jax-gpu python benchmark_1d.py
"""

import os
import sys
from enum import Enum
from functools import lru_cache

import numpy as np

from dgsem.log import get_logger

logger = get_logger("dgsem.backend")


class Backend(Enum):
    NUMBA = "numba"
    JAX_CPU = "jax-cpu"
    JAX_GPU = "jax-gpu"


@lru_cache(maxsize=1)
def get_backend() -> Backend:
    """
    Determine the compute backend based on environment variable.

    Returns:
        Backend enum value
    """
    backend = os.environ.get('DGSEM_BACKEND', 'numba').lower()

    if backend == 'numba':
        return Backend.NUMBA

    if backend in ('jax', 'jax-auto'):
        try:
            import jax
            jax.config.update("jax_enable_x64", True)
            devices = jax.devices()
            gpu_available = any(d.platform == 'gpu' for d in devices)
            if gpu_available:
                logger.info(f"[dgsem] JAX backend: GPU detected ({jax.devices('gpu')[0]})")
                return Backend.JAX_GPU
            else:
                logger.info("[dgsem] JAX backend: CPU mode (no GPU detected)")
                return Backend.JAX_CPU
        except ImportError:
            logger.warning("[dgsem] WARNING: JAX not installed, falling back to Numba")
            return Backend.NUMBA
        except RuntimeError as e:
            logger.warning(f"[dgsem] WARNING: JAX initialization failed ({e}), falling back to Numba")
            return Backend.NUMBA

    if backend == 'jax-cpu':
        try:
            import jax
            jax.config.update("jax_enable_x64", True)
            jax.config.update('jax_platform_name', 'cpu')
            logger.info("[dgsem] JAX backend: CPU mode (forced)")
            return Backend.JAX_CPU
        except ImportError:
            logger.warning("[dgsem] WARNING: JAX not installed, falling back to Numba")
            return Backend.NUMBA

    if backend == 'jax-gpu':
        try:
            import jax
            jax.config.update("jax_enable_x64", True)
            devices = jax.devices('gpu')
            if not devices:
                logger.warning("[dgsem] WARNING: No GPU found, falling back to JAX CPU")
                return Backend.JAX_CPU
            logger.info(f"[dgsem] JAX backend: GPU mode ({devices[0]})")
            return Backend.JAX_GPU
        except ImportError:
            logger.warning("[dgsem] WARNING: JAX not installed, falling back to Numba")
            return Backend.NUMBA
        except RuntimeError:
            logger.warning("[dgsem] WARNING: No GPU available, falling back to JAX CPU")
            return Backend.JAX_CPU

    raise ValueError(f"Unknown backend '{backend}' (expected numba, jax, jax-cpu or jax-gpu)")


def is_jax_backend() -> bool:
    """Check if using any JAX backend."""
    return get_backend() in (Backend.JAX_CPU, Backend.JAX_GPU)


def get_array_module(*arrays):
    """
    Get the array module matching the given arrays.

    Equation and indicator functions are written once and run both on NumPy
    arrays (reference) and on JAX arrays or tracers (device). JAX is only
    consulted when it has already been imported, so the reference path never
    pays for the import.

    Returns:
        module: numpy or jax.numpy
    """
    jax = sys.modules.get("jax")
    if jax is not None and any(isinstance(a, jax.Array) for a in arrays):
        import jax.numpy as jnp
        return jnp
    return np
