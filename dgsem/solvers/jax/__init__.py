"""
JAX backend for the dgsem residual pipeline.

Every stage is a jitted, fully vectorized function over all elements or
faces and their nodes. Buffers are immutable JAX arrays; stages return new
buffers and the orchestrator swaps them into the device cache.

Modules:
    containers_jax: Device mirror of the host cache, host/device transfers
    stages_jax: Jitted pipeline stages
    semidiscretization_jax: Stage-by-stage orchestrator with barriers
"""

import jax

jax.config.update("jax_enable_x64", True)
