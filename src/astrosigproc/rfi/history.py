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

"""Bounded memory of the statistics of recent intervals.

History-aware flaggers compare each interval against the intervals that came
before it, which exposes interference that raises the level of a whole
interval (and hence is invisible in the interval's own statistics).
"""

import math
from typing import Dict, Optional

import numpy as np

from .stats import Statistics


HISTORY_SIZE = 16
MIN_HISTORY_SIZE = 4


class HistoryWindow:
    """Ring buffer of the statistics and power spectra of recent intervals.

    Once `capacity` entries are stored, each new entry evicts the oldest.
    Sums of the means and medians are maintained incrementally, so that the
    averages are available in constant time.

    Parameters
    ----------
    capacity
        Maximum number of entries
    """

    def __init__(self, capacity: int = HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError('capacity must be positive')
        self.capacity = capacity
        self._means = np.zeros(capacity)
        self._medians = np.zeros(capacity)
        self._spreads = np.zeros(capacity)
        self._powers = None      # type: Optional[np.ndarray]
        self._start = 0
        self._size = 0
        self._sum_means = 0.0
        self._sum_medians = 0.0

    def __len__(self) -> int:
        return self._size

    @property
    def full(self) -> bool:
        return self._size == self.capacity

    def clear(self) -> None:
        self._powers = None
        self._start = 0
        self._size = 0
        self._sum_means = 0.0
        self._sum_medians = 0.0

    def push(self, statistics: Statistics, powers: np.ndarray) -> None:
        """Add the statistics and power spectrum of an interval.

        Raises
        ------
        ValueError
            if `powers` does not have the same shape as previous entries
        """
        powers = np.asarray(powers, dtype=np.float64)
        if self._powers is None:
            self._powers = np.zeros((self.capacity,) + powers.shape)
        elif self._powers.shape[1:] != powers.shape:
            raise ValueError('shape mismatch: history has {} but powers {}'.format(
                self._powers.shape[1:], powers.shape))
        if self.full:
            pos = self._start
            self._sum_means -= self._means[pos]
            self._sum_medians -= self._medians[pos]
            self._start = (self._start + 1) % self.capacity
        else:
            pos = (self._start + self._size) % self.capacity
            self._size += 1
        self._means[pos] = statistics.mean
        self._medians[pos] = statistics.median
        self._spreads[pos] = statistics.spread
        self._powers[pos] = powers
        self._sum_means += statistics.mean
        self._sum_medians += statistics.median

    def _order(self) -> np.ndarray:
        return (self._start + np.arange(self._size)) % self.capacity

    def means(self) -> np.ndarray:
        """Interval means, oldest first."""
        return self._means[self._order()]

    def medians(self) -> np.ndarray:
        """Interval medians, oldest first."""
        return self._medians[self._order()]

    def spreads(self) -> np.ndarray:
        """Interval spreads, oldest first."""
        return self._spreads[self._order()]

    def mean_of_means(self) -> float:
        if self._size == 0:
            return 0.0
        return self._sum_means / self._size

    def mean_of_medians(self) -> float:
        if self._size == 0:
            return 0.0
        return self._sum_medians / self._size

    def _spread(self, values: np.ndarray, mean: float) -> float:
        if self._size == 0:
            return 0.0
        return math.sqrt(float(np.mean((values - mean)**2)))

    def spread_of_means(self) -> float:
        """Population standard deviation of the interval means."""
        return self._spread(self.means(), self.mean_of_means())

    def spread_of_medians(self) -> float:
        """Population standard deviation of the interval medians."""
        return self._spread(self.medians(), self.mean_of_medians())

    def integrated_powers(self) -> np.ndarray:
        """Sum of the power spectra of all the entries.

        Raises
        ------
        ValueError
            if the history is empty
        """
        if self._powers is None or self._size == 0:
            raise ValueError('history is empty')
        return np.sum(self._powers[self._order()], axis=0)


class FlaggerHistory:
    """Separate history windows for each polarization of one stream.

    A window is created the first time a polarization is accessed.
    """

    def __init__(self, capacity: int = HISTORY_SIZE) -> None:
        self.capacity = capacity
        self._windows = {}    # type: Dict[int, HistoryWindow]

    def __getitem__(self, pol: int) -> HistoryWindow:
        try:
            return self._windows[pol]
        except KeyError:
            window = HistoryWindow(self.capacity)
            self._windows[pol] = window
            return window

    def __len__(self) -> int:
        return len(self._windows)

    def clear(self) -> None:
        self._windows.clear()
