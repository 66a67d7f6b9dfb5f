"""
Tests for backend selection and the run configuration.

Usage:
    pytest dgsem/tests/test_config.py -v
"""

import numpy as np
import pytest

from dgsem.backend import Backend, get_array_module, get_backend, is_jax_backend
from dgsem.config import RunConfig


@pytest.fixture
def clean_backend(monkeypatch):
    monkeypatch.delenv("DGSEM_BACKEND", raising=False)
    get_backend.cache_clear()
    yield monkeypatch
    get_backend.cache_clear()


class TestRunConfig:
    def test_defaults(self, monkeypatch):
        for name in ("DGSEM_POLYDEG", "DGSEM_LEVEL", "DGSEM_PRECISION", "DGSEM_NREPEAT"):
            monkeypatch.delenv(name, raising=False)
        config = RunConfig()
        assert config.polydeg == 3
        assert config.initial_refinement_level == 5
        assert (config.coordinates_min, config.coordinates_max) == (-2.0, 2.0)
        assert config.dtype == np.float64
        assert config.rtol == 1e-12

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DGSEM_POLYDEG", "4")
        monkeypatch.setenv("DGSEM_LEVEL", "7")
        monkeypatch.setenv("DGSEM_PRECISION", "Float32")
        monkeypatch.setenv("DGSEM_NREPEAT", "3")
        config = RunConfig()
        assert config.polydeg == 4
        assert config.initial_refinement_level == 7
        assert config.n_repeat == 3
        assert config.dtype == np.float32
        assert config.rtol == 1e-5

    def test_invalid_values(self, monkeypatch):
        monkeypatch.setenv("DGSEM_LEVEL", "five")
        with pytest.raises(ValueError):
            RunConfig()
        monkeypatch.delenv("DGSEM_LEVEL")
        monkeypatch.setenv("DGSEM_PRECISION", "half")
        with pytest.raises(ValueError):
            RunConfig()

    def test_invalid_polydeg(self, monkeypatch):
        monkeypatch.delenv("DGSEM_POLYDEG", raising=False)
        with pytest.raises(ValueError):
            RunConfig(polydeg=0)


class TestBackend:
    def test_default_is_numba(self, clean_backend):
        assert get_backend() == Backend.NUMBA
        assert not is_jax_backend()

    def test_unknown_backend(self, clean_backend):
        clean_backend.setenv("DGSEM_BACKEND", "opencl")
        with pytest.raises(ValueError):
            get_backend()

    def test_jax_backend(self, clean_backend):
        pytest.importorskip("jax")
        clean_backend.setenv("DGSEM_BACKEND", "jax")
        assert get_backend() in (Backend.JAX_CPU, Backend.JAX_GPU)
        assert is_jax_backend()

    def test_rhs_function_dispatch(self, clean_backend):
        from dgsem.semidiscretization import rhs_function
        from dgsem.tests.util import advection_2d_mortar

        semi = advection_2d_mortar()
        assert rhs_function(semi) == semi.rhs

        pytest.importorskip("jax")
        from dgsem.solvers.jax.semidiscretization_jax import SemidiscretizationJAX

        clean_backend.setenv("DGSEM_BACKEND", "jax")
        get_backend.cache_clear()
        device_rhs = rhs_function(semi)
        assert isinstance(device_rhs.__self__, SemidiscretizationJAX)


def test_array_module():
    assert get_array_module(np.zeros(3)) is np
    assert get_array_module(1.0, np.zeros(2)) is np
    jnp = pytest.importorskip("jax.numpy")
    assert get_array_module(np.zeros(3), jnp.zeros(3)) is jnp
