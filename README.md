# hallr

Mesh processing commands for 3D modelling tools. Each command is a
`process_command(config, models)` function that takes a string-keyed option
mapping and a list of `hallr.options.Model` objects, and returns a
`hallr.options.CommandResult`.

## Models and results

`Model` holds:

- `vertices`: a sequence of `(x, y, z)` points in world coordinates,
- `indices`: a flat sequence of vertex indices, read as triangles or as
  edge pairs depending on the command,
- `world_orientation`: 16 floats, a 4×4 matrix stored column by column
  (the identity by default).

When the world orientation of the input model is not the identity, the
commands map their output vertices back into the model's local coordinates
with `Model.world_to_local_transform()`.

`CommandResult` is a named tuple of `vertices`, `indices`, `world_matrix`
and `config`. The returned `config` holds the packaging of the output under
the key `"📦"`: `"△"` for triangles (`MeshFormat.TRIANGULATED`) or `"⸗"`
for edge pairs (`MeshFormat.EDGES`).

Every command expects the input packaging under `"📦"` in its options; the
first character describes the first model.

## Commands

### Mesh cleanup — `hallr.mesh_cleanup`

Takes exactly one triangulated model. Finds non-manifold edges (edges
shared by faces with roughly opposite normals) and non-manifold vertices
(vertices joining fans of faces that share no edge and face different ways),
splits the vertices and collapses the edges, and repeats until nothing is
left to fix or `max_iterations` (default 5) rounds have run. The `Mesh`
class can also be used directly:

- `Mesh(vertices, faces)` with `Face(v0, v1, v2)` triangles,
- `detect_non_manifold_edges()`, `detect_non_manifold_vertices()`,
- `fix_non_manifold_vertices()`, `fix_non_manifold_edges()`,
- `fix_non_manifold_iterative(max_iterations)`,
- `stats()`: vertex count, face count, non-manifold edge and vertex counts.

### Line simplification — `hallr.simplify_rdp`

Takes an edge-packaged model, splits its edges into separate chains with
`divide_into_shapes(indices)` and simplifies each chain with the
Ramer–Douglas–Peucker algorithm (`simplify_rdp_2d`, `simplify_rdp_3d`).

Options:

- `simplify_distance` (required): the tolerance, as a percentage of the
  diagonal of the input's bounding box,
- `simplify_3d` (`"true"` or `"false"`, default false): in 2D mode the
  simplification works in the XY plane and the output vertices get z = 0.

Output is edge-packaged. If no model or no indices are given, the result is
empty.

### SDF mesh — `hallr.sdf_mesh`

Takes exactly one edge-packaged model and turns every edge into a capsule
of a signed distance field. The field is sampled in chunks of 14³ voxels
and each chunk is meshed with surface nets (`hallr.surface_nets.surface_nets`).
The output is a triangulated mesh.

Options:

- `SDF_DIVISIONS` (required): voxels along the largest dimension of the
  input, from 9.9 up to (not including) 600.1,
- `SDF_RADIUS_MULTIPLIER` (required): the capsule radius, as a percentage of
  the largest dimension of the input's bounding box.

`parse_input`, `build_voxel` and `build_output_model` expose the steps of
the command.

For `simplify_rdp` and `sdf_mesh`, a `"≈"` option (a vertex merge distance)
is passed through to the returned config unchanged in value.

## Example

```python
from hallr import mesh_cleanup
from hallr.options import Model

cube = Model(
    vertices=[
        (-1.0, -1.0, -1.0), (-1.0, -1.0, 1.0), (-1.0, 1.0, -1.0), (-1.0, 1.0, 1.0),
        (1.0, -1.0, -1.0), (1.0, -1.0, 1.0), (1.0, 1.0, -1.0), (1.0, 1.0, 1.0),
    ],
    indices=[
        1, 2, 0, 3, 6, 2, 7, 4, 6, 5, 0, 4, 6, 0, 2, 3, 5, 7,
        1, 3, 2, 3, 7, 6, 7, 5, 4, 5, 1, 0, 6, 4, 0, 3, 1, 5,
    ],
)

result = mesh_cleanup.process_command({"📦": "△", "max_iterations": "10"}, [cube])
print(len(result.vertices), len(result.indices))  # 8 36
```

## Errors

Problems with the input — a missing or unparsable option, a value out of
range, the wrong number of models, the wrong mesh packaging, non-finite
coordinates — raise `hallr.options.InvalidInputDataError`. A generated mesh
too large to index raises `hallr.options.MeshOverflowError`. Both derive
from `hallr.options.HallrError`.

Progress is reported through the standard `logging` module.

## What this package does not do

It is a library of functions only: there is no command-line program and
no integration with a modelling application. It holds only the three
commands above; it does not generate L-system geometry, scan surfaces
with probes, or mesh tapered 2½D tubes.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```