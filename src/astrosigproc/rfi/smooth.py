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

"""Gaussian smoothing of 1D spectra and time series."""

import functools
from typing import Optional

import numpy as np
from scipy.ndimage import correlate1d


@functools.lru_cache(maxsize=None)
def gaussian_kernel(sigma: float) -> np.ndarray:
    """Normalised Gaussian kernel with standard deviation `sigma`.

    The kernel has a radius of 3 sigma (at least 1 sample). The returned
    array is shared between callers and hence read-only.
    """
    if sigma <= 0:
        raise ValueError('sigma must be positive')
    radius = max(1, int(3.0 * sigma + 0.5))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-0.5 * (x / sigma)**2)
    kernel /= np.sum(kernel)
    kernel.flags.writeable = False
    return kernel


def gaussian_filter1d(data: np.ndarray, sigma: float,
                      weights: Optional[np.ndarray] = None) -> np.ndarray:
    """Filter `data` with a Gaussian, taking per-sample weights into account.

    Values outside of `data` have zero weight, so samples near the edges are
    normalised by the part of the kernel that overlaps the data rather than
    being pulled towards zero. Samples with zero weight (typically flagged
    ones) do not contribute to their neighbours.

    Where the kernel does not reach any sample with non-zero weight, the
    input value is returned unchanged.

    Parameters
    ----------
    data
        1D input data
    sigma
        Standard deviation of the Gaussian, in samples
    weights
        Non-negative weights of the same shape as `data`. If not specified,
        all samples have weight 1.

    Returns
    -------
    ndarray
        Smoothed data, as float64
    """
    data = np.asarray(data, dtype=np.float64)
    if data.ndim != 1:
        raise ValueError('data must be 1D')
    if weights is None:
        weights = np.ones_like(data)
    else:
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != data.shape:
            raise ValueError('shape mismatch')
    kernel = gaussian_kernel(float(sigma))
    filtered_weight = correlate1d(weights, kernel, mode='constant', cval=0.0)
    filtered = correlate1d(data * weights, kernel, mode='constant', cval=0.0)
    valid = filtered_weight > 0
    with np.errstate(invalid='ignore', divide='ignore'):
        return np.where(valid, filtered / np.where(valid, filtered_weight, 1.0), data)
