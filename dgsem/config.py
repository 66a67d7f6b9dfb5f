"""
Run configuration.

Defines the discretization and benchmarking parameters shared by the
benchmark scripts and the device pipeline.
"""

import os

import numpy as np


_PRECISIONS = {
    'float64': np.float64,
    'double': np.float64,
    'float32': np.float32,
    'single': np.float32,
}


class RunConfig:
    """Configuration class for a DG-SEM residual run."""

    def __init__(self,
                 polydeg=3,
                 initial_refinement_level=5,
                 coordinates_min=-2.0,
                 coordinates_max=2.0,
                 precision='float64',
                 n_warmup=1,
                 n_repeat=10,
                 t=0.0):

        self.polydeg = polydeg
        self.initial_refinement_level = initial_refinement_level
        self.coordinates_min = coordinates_min
        self.coordinates_max = coordinates_max
        self.precision = precision
        self.n_warmup = n_warmup
        self.n_repeat = n_repeat
        self.t = t

        self._resolve_from_env()

        if self.precision not in _PRECISIONS:
            raise ValueError(f"Unknown precision '{self.precision}' "
                             f"(expected one of {sorted(_PRECISIONS)})")
        if self.polydeg < 1:
            raise ValueError(f"polydeg must be >= 1, got {self.polydeg}")

    def _resolve_from_env(self):
        """Override config from environment variables if set."""
        env_vars = {
            'polydeg': ('DGSEM_POLYDEG', int),
            'initial_refinement_level': ('DGSEM_LEVEL', int),
            'precision': ('DGSEM_PRECISION', lambda x: x.lower()),
            'n_repeat': ('DGSEM_NREPEAT', int),
        }

        for attr, (env_name, converter) in env_vars.items():
            value = os.environ.get(env_name)
            if value is not None:
                try:
                    setattr(self, attr, converter(value))
                except (ValueError, TypeError):
                    raise ValueError(f"Invalid value '{value}' for {env_name}")

    @property
    def dtype(self):
        """NumPy dtype of the state buffers."""
        return _PRECISIONS[self.precision]

    @property
    def rtol(self):
        """Norm-based tolerance for device vs reference comparisons."""
        return 1e-12 if self.dtype == np.float64 else 1e-5

    def __repr__(self):
        return (f"RunConfig(polydeg={self.polydeg}, "
                f"level={self.initial_refinement_level}, "
                f"domain=[{self.coordinates_min}, {self.coordinates_max}], "
                f"precision={self.precision}, n_repeat={self.n_repeat})")
