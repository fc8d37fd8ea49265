################################################################################
# Copyright (c) 2021, National Research Foundation (SARAO)
#
# Licensed under the BSD 3-Clause License (the "License"); you may not use
# this file except in compliance with the License. You may obtain a copy
# of the License at
#
#   https://opensource.org/licenses/BSD-3-Clause
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
################################################################################

"""Unit tests for :mod:`astrosigproc`."""

from typing import Tuple, Union

import numpy as np


def complex_normal(
    state: np.random.RandomState,
    loc: complex = 0.0j,
    scale: float = 1.0,
    size: Union[int, Tuple[int, ...], None] = None
) -> np.ndarray:
    """Generate a circularly symmetric Gaussian in the Argand plane."""
    return (
        state.normal(np.real(loc), scale, size)
        + 1j * state.normal(np.imag(loc), scale, size)
    )
