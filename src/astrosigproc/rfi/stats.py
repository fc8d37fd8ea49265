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

"""Robust estimators of the level and spread of partially flagged data.

Three estimators are provided, trading efficiency for robustness against
the outliers that RFI introduces:

``NORMAL``
    Mean and standard deviation. A single outlier can move them arbitrarily
    far (0% breakdown point).
``WINSORIZED``
    Values below the 10th and above the 90th percentile are clipped before
    computing the mean and variance (10% breakdown point).
``MAD``
    The spread is estimated from the median absolute deviation from the
    median (50% breakdown point). Note that this is the *median* of the
    absolute deviations, not their mean as in some older flaggers: the mean
    would let a single outlier inflate the spread without bound.
"""

import enum
import logging
import math
from typing import NamedTuple, Tuple

import numba
import numpy as np

from . import MAD_NORMAL, WINSORIZED_SCALE


_logger = logging.getLogger(__name__)


class StatisticsMode(enum.Enum):
    NORMAL = 'normal'
    WINSORIZED = 'winsorized'
    MAD = 'mad'


class Statistics(NamedTuple):
    """Summary of the unflagged samples of one interval."""

    mean: float
    median: float
    spread: float


ZERO_STATISTICS = Statistics(0.0, 0.0, 0.0)


def check_mask(samples: np.ndarray, flags: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Convert `samples` and `flags` to arrays and check that they match.

    Raises
    ------
    ValueError
        if `flags` does not have the same shape as `samples`
    """
    samples = np.asarray(samples)
    flags = np.asarray(flags)
    if samples.shape != flags.shape:
        raise ValueError('shape mismatch: samples {} but flags {}'.format(
            samples.shape, flags.shape))
    return samples, flags.astype(np.bool_, copy=False)


@numba.njit(nogil=True)
def _select(values, k):
    # Hoare partitioning, narrowing [low, high] until it only contains k.
    low = 0
    high = values.shape[0] - 1
    while low < high:
        pivot = values[(low + high) // 2]
        i = low
        j = high
        while i <= j:
            while values[i] < pivot:
                i += 1
            while values[j] > pivot:
                j -= 1
            if i <= j:
                tmp = values[i]
                values[i] = values[j]
                values[j] = tmp
                i += 1
                j -= 1
        if k <= j:
            high = j
        elif k >= i:
            low = i
        else:
            # Everything between j and i is equal to the pivot
            return values[k]
    return values[k]


def quickselect(values: np.ndarray, k: int) -> float:
    """Find the `k`-th smallest element (counting from 0) of `values`.

    This runs in expected linear time. `values` is not modified.

    Raises
    ------
    IndexError
        if `k` is out of range
    """
    scratch = np.array(values, dtype=np.float64).ravel()
    if not 0 <= k < scratch.size:
        raise IndexError('k={} out of range for {} values'.format(k, scratch.size))
    return float(_select(scratch, k))


def median(values: np.ndarray) -> float:
    """Middle element of `values` once sorted.

    For an even number of elements this is the upper of the two middle
    elements, rather than their average.
    """
    size = np.size(values)
    if size == 0:
        raise ValueError('median of empty sequence')
    return quickselect(values, size // 2)


def _normal_statistics(clean: np.ndarray) -> Statistics:
    return Statistics(float(np.mean(clean)), median(clean), float(np.std(clean)))


def _winsorized_statistics(clean: np.ndarray) -> Statistics:
    clean = np.sort(clean)
    n = clean.size
    low = int(math.floor(0.1 * n))
    high = max(int(math.ceil(0.9 * n)) - 1, 0)
    clipped = np.clip(clean, clean[low], clean[high])
    mean = float(np.mean(clipped))
    spread = math.sqrt(WINSORIZED_SCALE * float(np.var(clipped)))
    return Statistics(mean, float(clean[n // 2]), spread)


def _mad_statistics(clean: np.ndarray) -> Statistics:
    med = median(clean)
    spread = MAD_NORMAL * median(np.abs(clean - med))
    return Statistics(float(np.mean(clean)), med, spread)


_ESTIMATORS = {
    StatisticsMode.NORMAL: _normal_statistics,
    StatisticsMode.WINSORIZED: _winsorized_statistics,
    StatisticsMode.MAD: _mad_statistics
}


def compute_statistics(samples: np.ndarray, flags: np.ndarray,
                       mode: StatisticsMode = StatisticsMode.MAD) -> Statistics:
    """Compute mean, median and spread of the unflagged samples.

    Parameters
    ----------
    samples
        1D array of sample values
    flags
        Boolean array of the same shape, true where a sample must be ignored
    mode
        Estimator to use for the spread (and for the winsorized estimator,
        also the mean)

    Returns
    -------
    statistics
        The statistics, or all zeros if every sample is flagged
    """
    samples, flags = check_mask(samples, flags)
    if samples.ndim != 1:
        raise ValueError('samples must be 1D, not {}D'.format(samples.ndim))
    clean = samples[~flags].astype(np.float64)
    if clean.size == 0:
        return ZERO_STATISTICS
    statistics = _ESTIMATORS[StatisticsMode(mode)](clean)
    _logger.debug('%s statistics over %d samples: %s', StatisticsMode(mode).value,
                  clean.size, statistics)
    return statistics
