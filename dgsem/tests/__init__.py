"""
Test suite for dgsem.

- test_basis: quadrature, derivative and mortar operators
- test_mesh: tree construction, balance and face catalogs
- test_equations: flux consistency and symmetry, boundary conditions
- test_reference: properties of the sequential reference pipeline
- test_jax_vs_reference: stage-by-stage device vs reference validation
- test_config: backend selection and run configuration

Run with pytest from the repository root.
"""
