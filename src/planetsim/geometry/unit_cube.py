import numpy as np

from planetsim.geometry.extractor import Mesh

# Unit cube in render space [-1, 1]^3, one face per block of four vertices.
_FACES = (
    # normal, four corners (counter-clockwise seen from outside)
    ((1, 0, 0), ((1, -1, -1), (1, 1, -1), (1, 1, 1), (1, -1, 1))),
    ((-1, 0, 0), ((-1, -1, 1), (-1, 1, 1), (-1, 1, -1), (-1, -1, -1))),
    ((0, 1, 0), ((-1, 1, -1), (-1, 1, 1), (1, 1, 1), (1, 1, -1))),
    ((0, -1, 0), ((-1, -1, 1), (-1, -1, -1), (1, -1, -1), (1, -1, 1))),
    ((0, 0, 1), ((-1, -1, 1), (1, -1, 1), (1, 1, 1), (-1, 1, 1))),
    ((0, 0, -1), ((1, -1, -1), (-1, -1, -1), (-1, 1, -1), (1, 1, -1))),
)


def unit_cube_mesh() -> Mesh:
    """Fixed debug overlay: 24 vertices, 12 triangles."""
    vertices = []
    indices = []
    for face, (normal, corners) in enumerate(_FACES):
        for corner in corners:
            vertices.append((*corner, *normal))
        base = 4 * face
        indices.extend((base, base + 1, base + 2, base, base + 2, base + 3))
    return Mesh(np.asarray(vertices, dtype=np.float32), np.asarray(indices, dtype=np.uint32))
