# Copyright 2024 inuex35
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Bounds-checked views over raw parameter and Jacobian buffers

Optimizers hand parameter blocks and Jacobian outputs around as flat buffers.
These helpers give them a fixed shape without copying. Jacobian buffers are
dense and row-major: element ``(r, c)`` of a ``rows x cols`` block lives at
flat index ``r * cols + c``.
"""

import numpy as np


def map_parameter_block(block, size: int) -> np.ndarray:
    """Return a read-only float view of the first ``size`` entries of ``block``

    Parameters
    ----------
    block : array_like
        Raw parameter buffer
    size : int
        Declared size of the block

    Returns
    -------
    np.ndarray
        1-D view of length ``size``

    Raises
    ------
    ValueError
        If the buffer holds fewer than ``size`` elements
    """
    arr = np.asarray(block, dtype=np.float64).reshape(-1)
    if arr.size < size:
        raise ValueError(
            f"Parameter block has {arr.size} elements, expected {size}")
    view = arr[:size]
    view.flags.writeable = False
    return view


def map_jacobian(buffer, rows: int, cols: int) -> np.ndarray:
    """Return a writable ``rows x cols`` row-major view onto ``buffer``

    The buffer must be a C-contiguous float64 ``np.ndarray`` of exactly
    ``rows * cols`` elements so that writes through the view reach the caller.

    Raises
    ------
    ValueError
        If the buffer has the wrong size, type or memory layout
    """
    if not isinstance(buffer, np.ndarray) or buffer.dtype != np.float64:
        raise ValueError("Jacobian buffer must be a float64 numpy array")
    if buffer.size != rows * cols:
        raise ValueError(
            f"Jacobian buffer has {buffer.size} elements, expected {rows}x{cols}")
    if not buffer.flags.c_contiguous or not buffer.flags.writeable:
        raise ValueError("Jacobian buffer must be C-contiguous and writable")
    return buffer.reshape(rows, cols)
