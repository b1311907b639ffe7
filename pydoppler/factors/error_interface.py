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

"""Cost function contract shared by residual blocks"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np


class ErrorInterface(ABC):
    """
    Residual block evaluated by a nonlinear least-squares solver.

    ``parameters`` is a sequence with one flat buffer per parameter block.
    ``jacobians`` is ``None`` or a sequence with one slot per block; a slot is
    either ``None`` (the block's Jacobian is not needed) or a C-contiguous
    float64 array of ``residual_dim * block_size`` elements that receives the
    row-major Jacobian in place. ``jacobians_minimal`` follows the same rules
    with the minimal (tangent space) size of each block.

    Implementations must not modify instance state while evaluating, so a
    single instance can be evaluated from several solver threads at once.
    """

    @property
    @abstractmethod
    def residual_dim(self) -> int:
        """Dimension of the residual vector"""

    @property
    @abstractmethod
    def parameter_block_sizes(self) -> tuple[int, ...]:
        """Raw size of every parameter block"""

    @property
    @abstractmethod
    def parameter_block_minimal_sizes(self) -> tuple[int, ...]:
        """Tangent space size of every parameter block"""

    def parameter_block_dim(self, index: int) -> int:
        return self.parameter_block_sizes[index]

    @property
    def num_parameter_blocks(self) -> int:
        return len(self.parameter_block_sizes)

    def type_info(self) -> str:
        """Name of the residual type, used in logs"""
        return type(self).__name__

    def evaluate(self,
                 parameters: Sequence,
                 jacobians: Optional[Sequence[Optional[np.ndarray]]] = None) -> np.ndarray:
        """
        Evaluate the weighted residual and, optionally, raw Jacobians.

        Returns
        -------
        np.ndarray, shape (residual_dim,)
            Weighted residual
        """
        return self.evaluate_with_minimal_jacobians(parameters, jacobians, None)

    @abstractmethod
    def evaluate_with_minimal_jacobians(
            self,
            parameters: Sequence,
            jacobians: Optional[Sequence[Optional[np.ndarray]]] = None,
            jacobians_minimal: Optional[Sequence[Optional[np.ndarray]]] = None) -> np.ndarray:
        """Evaluate the weighted residual, raw and minimal Jacobians"""
