from typing import Any, Callable, Sequence, Union

import numpy as np
from numpy.typing import ArrayLike, DTypeLike, NDArray

RealNDArray = NDArray[np.float64]
ComplexNDArray = NDArray[np.complex128]

ArrayND = np.ndarray
Array1D = ArrayND
Array2D = ArrayND
Array3D = ArrayND
Array4D = ArrayND

# Used for sequences of three numbers:
Vector = Union[Sequence[float], Array1D]
IntVector = Union[Sequence[int], Array1D]

# vector -> vector maps (projectors, preconditioners):
LinearMap = Callable[[ArrayND], ArrayND]

MPIComm = Any

__all__ = ['ArrayLike', 'DTypeLike', 'RealNDArray', 'ComplexNDArray',
           'ArrayND', 'Array1D', 'Array2D', 'Array3D', 'Array4D',
           'Vector', 'IntVector', 'LinearMap', 'MPIComm']
