"""
Device mirror of the host cache.

The container NamedTuples of `dgsem.core.containers` are JAX pytrees, so
the device cache reuses them with JAX arrays as leaves.
"""

from typing import NamedTuple

import jax
import numpy as np

from dgsem.core.containers import (
    BoundaryContainer,
    ElementContainer,
    InterfaceContainer,
    MortarContainer,
)


class DeviceCache(NamedTuple):
    """
    Tables and buffers on the device.

    NamedTuples are automatically JAX pytrees (no registration needed).
    """
    elements: ElementContainer
    interfaces: InterfaceContainer
    boundaries: BoundaryContainer
    mortars: MortarContainer


def _to_device(array, dtype):
    array = np.asarray(array)
    if dtype is not None and np.issubdtype(array.dtype, np.floating):
        array = array.astype(dtype)
    return jax.device_put(array)


def cache_to_device(cache, dtype=None):
    """
    Transfer all tables and buffers of a host Cache once.

    Args:
        cache: host Cache
        dtype: floating point dtype on the device (default: keep float64)

    Returns:
        DeviceCache
    """
    host = (cache.elements, cache.interfaces, cache.boundaries, cache.mortars)
    device = jax.tree_util.tree_map(lambda a: _to_device(a, dtype), host)
    return DeviceCache(*device)


def copy_to_device(du, u, dtype=None):
    """Host state arrays -> device arrays."""
    return _to_device(du, dtype), _to_device(u, dtype)


def copy_to_host(du, u):
    """Device state arrays -> NumPy arrays."""
    return np.asarray(jax.device_get(du)), np.asarray(jax.device_get(u))


def cache_to_host(device_cache):
    """Device cache -> tuple of containers with NumPy leaves, for inspection."""
    return jax.tree_util.tree_map(lambda a: np.asarray(jax.device_get(a)), device_cache)
