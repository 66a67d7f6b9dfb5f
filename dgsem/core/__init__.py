"""
Basis, mesh and container infrastructure shared by all backends.
"""
