################################################################################
# Copyright (c) 2014-2022, National Research Foundation (SARAO)
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

"""Scale-invariant rank (SIR) dilation of flag masks.

See Offringa et al., A&A 539, A95 (2012). The linear-time formulation used
here scans the mask once forwards and once backwards, accumulating a credit
that grows by η for each flagged sample and shrinks by 1 - η for each
unflagged one. A sample ends up flagged if it terminates a run (in either
direction) in which at most a fraction η of the samples is unflagged.
"""

import numba
import numpy as np


@numba.njit(nogil=True)
def _sir_operator(flags, eta, out):
    credit = 0.0
    for i in range(flags.shape[0]):
        w = eta if flags[i] else eta - 1.0
        credit = max(credit, 0.0) + w
        out[i] = credit >= 0.0
    credit = 0.0
    for i in range(flags.shape[0] - 1, -1, -1):
        w = eta if flags[i] else eta - 1.0
        credit = max(credit, 0.0) + w
        out[i] = out[i] or credit >= 0.0


def sir_operator(flags: np.ndarray, eta: float) -> np.ndarray:
    """Dilate a 1D flag mask with the SIR operator.

    The cost is linear in the length of the mask, independently of how far
    the flags are extended.

    Parameters
    ----------
    flags
        1D boolean mask (not modified)
    eta
        Maximum fraction of unflagged samples in a run that gets flagged
        entirely. Zero leaves the mask unchanged.

    Returns
    -------
    ndarray
        New boolean mask, with at least the flags of `flags` set
    """
    flags = np.asarray(flags, dtype=np.bool_)
    if flags.ndim != 1:
        raise ValueError('flags must be 1D')
    if not 0.0 <= eta < 1.0:
        raise ValueError('eta must be in the range [0, 1)')
    if eta == 0.0:
        return flags.copy()
    out = np.empty_like(flags)
    _sir_operator(flags, float(eta), out)
    return out
