import numpy as np

from pwresponse.typing import ArrayND


class Symmetry:
    """Space-group operations acting on real-space grids.

    op_scc: int ndarray, shape=(nsym, 3, 3)
        Rotations in fractional (scaled) coordinates.  The operation
        maps r to ``op_cc @ r + ft_c``.
    ft_sc: ndarray, shape=(nsym, 3)
        Fractional translations.  Must be commensurate with the grids
        the operations are applied to.

    The operations must form a group; the identity is always included.
    """
    def __init__(self, op_scc=None, ft_sc=None):
        if op_scc is None:
            op_scc = [np.eye(3, dtype=int)]
        op_scc = np.array(op_scc, dtype=int).reshape((-1, 3, 3))
        if ft_sc is None:
            ft_sc = np.zeros((len(op_scc), 3))
        ft_sc = np.array(ft_sc, dtype=float).reshape((-1, 3))
        if len(ft_sc) != len(op_scc):
            raise ValueError('Need one fractional translation per operation')

        identity = [s for s, (op_cc, ft_c) in enumerate(zip(op_scc, ft_sc))
                    if (op_cc == np.eye(3)).all() and not ft_c.any()]
        if not identity:
            op_scc = np.concatenate([np.eye(3, dtype=int)[np.newaxis],
                                     op_scc])
            ft_sc = np.concatenate([np.zeros((1, 3)), ft_sc])
        elif identity[0] != 0:
            order = [identity[0]] + [s for s in range(len(op_scc))
                                     if s != identity[0]]
            op_scc = op_scc[order]
            ft_sc = ft_sc[order]

        self.op_scc = op_scc
        self.ft_sc = ft_sc
        self._index_cache = {}

    def __len__(self):
        return len(self.op_scc)

    @property
    def is_trivial(self) -> bool:
        return len(self) == 1

    def __str__(self):
        return f'Symmetry(operations={len(self)})'

    def grid_indices(self, size_c) -> np.ndarray:
        """Flat grid index of op(r) for every operation and grid point."""
        size_c = tuple(int(n) for n in size_c)
        R_sR = self._index_cache.get(size_c)
        if R_sR is not None:
            return R_sR

        N_c = np.array(size_c)
        i_cR = np.indices(size_c).reshape((3, -1))
        R_sR = np.empty((len(self), i_cR.shape[1]), dtype=int)
        for s, (op_cc, ft_c) in enumerate(zip(self.op_scc, self.ft_sc)):
            x_cR = (op_cc @ (i_cR / N_c[:, np.newaxis]) +
                    ft_c[:, np.newaxis]) * N_c[:, np.newaxis]
            j_cR = np.rint(x_cR).astype(int)
            if abs(x_cR - j_cR).max() > 1e-8:
                raise ValueError(
                    f'Symmetry operation {s} does not map the '
                    f'{size_c} grid onto itself')
            j_cR %= N_c[:, np.newaxis]
            R_sR[s] = np.ravel_multi_index(j_cR, size_c)

        self._index_cache[size_c] = R_sR
        return R_sR

    def symmetrize(self, a_xR: ArrayND) -> ArrayND:
        """Project onto the symmetry-invariant subspace.

        The last three axes are the grid axes.  A new array is returned.
        """
        a_xR = np.asarray(a_xR)
        if self.is_trivial:
            return a_xR.copy()
        size_c = a_xR.shape[-3:]
        R_sR = self.grid_indices(size_c)
        a_xR_flat = a_xR.reshape((-1, R_sR.shape[1]))
        b_xR = np.zeros_like(a_xR_flat)
        for R_R in R_sR:
            b_xR += a_xR_flat[:, R_R]
        b_xR /= len(self)
        return b_xR.reshape(a_xR.shape)
