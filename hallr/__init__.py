"""Mesh cleanup, line simplification and SDF meshing commands."""

__version__ = "0.1.15"
__all__ = ["options", "mesh_cleanup", "simplify_rdp", "surface_nets", "sdf_mesh"]