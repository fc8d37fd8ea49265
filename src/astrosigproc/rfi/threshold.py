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

"""RFI thresholding algorithms.

Each algorithm takes a 1D array of samples, the statistics of its unflagged
samples and a sensitivity, and adds flags in place to a boolean mask.
A higher sensitivity value makes the thresholds higher, and hence the
flagging *less* sensitive.
"""

import logging
import math
from typing import Sequence

import numba
import numpy as np

from . import FIRST_THRESHOLD, THRESHOLD_FALLOFF
from .stats import Statistics, check_mask


_logger = logging.getLogger(__name__)

SUM_THRESHOLD_WINDOWS = (1, 2, 4, 8, 16)
CUTOFF_THRESHOLD = 7.0


def threshold_scale(statistics: Statistics, sensitivity: float) -> float:
    """Convert a sensitivity into a threshold unit.

    This is normally the spread scaled by `sensitivity`. When the spread is
    exactly zero (for example, if all the unflagged samples are identical)
    the sensitivity is used as an absolute unit instead, so that
    the whole interval is not flagged.
    """
    if statistics.spread == 0.0:
        return sensitivity
    return statistics.spread * sensitivity


def window_threshold(statistics: Statistics, sensitivity: float, window: int) -> float:
    """Threshold on the average of `window` consecutive samples.

    This uses the equation from Offringa (2010), with a falloff of
    :data:`~astrosigproc.rfi.THRESHOLD_FALLOFF` per doubling of the window.
    """
    factor = FIRST_THRESHOLD * pow(THRESHOLD_FALLOFF, math.log2(window)) / window
    return statistics.median + factor * threshold_scale(statistics, sensitivity)


@numba.njit(nogil=True)
def _sum_threshold_window(samples, flags, window, threshold):
    # Flags set by one window position are seen by the following positions.
    for base in range(samples.shape[0] - window + 1):
        total = 0.0
        count = 0
        for pos in range(base, base + window):
            if not flags[pos]:
                total += samples[pos]
                count += 1
        if count > 0 and total >= count * threshold:
            for pos in range(base, base + window):
                flags[pos] = True


def sum_threshold(samples: np.ndarray, flags: np.ndarray, statistics: Statistics,
                  sensitivity: float,
                  windows: Sequence[int] = SUM_THRESHOLD_WINDOWS) -> np.ndarray:
    """Thresholding using the Offringa Sum-Threshold algorithm.

    For each window size in turn, every run of `window` consecutive samples
    is tested: if the average of its unflagged members reaches the threshold
    for that window size, all its members are flagged. Flags are never
    cleared.

    Parameters
    ----------
    samples
        1D array of sample values
    flags
        Boolean mask of the same shape, updated in place
    statistics
        Statistics of the unflagged samples (see
        :func:`~astrosigproc.rfi.stats.compute_statistics`)
    sensitivity
        Multiplier for the thresholds
    windows
        Window sizes, in the order to apply them

    Returns
    -------
    flags
        The same array as `flags`
    """
    samples, bool_flags = check_mask(samples, flags)
    if bool_flags is not flags:
        raise ValueError('flags must be a boolean array so it can be updated in place')
    for window in windows:
        if window > samples.shape[0]:
            break
        threshold = window_threshold(statistics, sensitivity, window)
        _logger.debug('sumthreshold window = %d, threshold = %g', window, threshold)
        _sum_threshold_window(samples, flags, window, threshold)
    return flags


def threshold(samples: np.ndarray, flags: np.ndarray, statistics: Statistics,
              sensitivity: float, cutoff: float = CUTOFF_THRESHOLD) -> np.ndarray:
    """Flag each sample independently if it reaches a single cutoff.

    The cutoff is `cutoff` threshold units (see :func:`threshold_scale`)
    above the median. `flags` is updated in place and returned.
    """
    samples, bool_flags = check_mask(samples, flags)
    if bool_flags is not flags:
        raise ValueError('flags must be a boolean array so it can be updated in place')
    level = statistics.median + cutoff * threshold_scale(statistics, sensitivity)
    flags |= samples >= level
    return flags
