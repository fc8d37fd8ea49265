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

"""Incoherent dedispersion and folding of periodic signals.

A pulse travelling through the ionised interstellar medium arrives later at
lower frequencies, by an amount proportional to the dispersion measure (DM)
and to the inverse square of the frequency. Dedispersion shifts each
channel in time to undo this delay, after which many periods of a weak
periodic signal can be folded together to raise its signal-to-noise ratio.

Frequencies are in MHz, times in seconds and the DM in pc cm^-3.
Data arrays are indexed by time then frequency.
"""

import logging
import math
from typing import NamedTuple

import numpy as np


_logger = logging.getLogger(__name__)

DISPERSION_CONSTANT = 4148.808
"""Dispersion delay constant, in s MHz^2 pc^-1 cm^3."""


class Dedispersion(NamedTuple):
    """Dedispersed copy of the data, with the shifts that were applied."""

    data: np.ndarray
    flags: np.ndarray
    shifts: np.ndarray

    @property
    def max_shift(self) -> int:
        """Largest shift magnitude, in samples.

        The last (or for negative shifts, the first) `max_shift` time samples
        contain padding rather than data in at least one channel.
        """
        return int(np.max(np.abs(self.shifts))) if self.shifts.size else 0


class PulseProfile(NamedTuple):
    profile: np.ndarray
    counts: np.ndarray
    snr: float


def channel_frequencies(n_freqs: int, low_freq: float, freq_step: float) -> np.ndarray:
    """Centre frequencies of `n_freqs` uniformly spaced channels."""
    if n_freqs < 1:
        raise ValueError('need at least one channel')
    freqs = low_freq + np.arange(n_freqs) * float(freq_step)
    if np.any(freqs <= 0):
        raise ValueError('frequencies must be positive')
    return freqs


def compute_delays(n_freqs: int, low_freq: float, freq_step: float, dm: float) -> np.ndarray:
    """Dispersion delay of each channel relative to the highest frequency.

    Returns
    -------
    delays
        Delays in seconds, which are zero for the highest-frequency channel
        and positive for the others (for positive `dm`)
    """
    freqs = channel_frequencies(n_freqs, low_freq, freq_step)
    high_freq = np.max(freqs)
    return DISPERSION_CONSTANT * dm * (1.0 / freqs**2 - 1.0 / high_freq**2)


def compute_shifts(n_freqs: int, sample_rate: float, low_freq: float, freq_step: float,
                   dm: float) -> np.ndarray:
    """Dispersion delay of each channel, in whole samples (rounded down)."""
    delays = compute_delays(n_freqs, low_freq, freq_step, dm)
    shifts = (delays * sample_rate).astype(np.int64)
    _logger.debug('DM %g: maximum shift %d samples', dm, np.max(shifts))
    return shifts


def dedisperse(data: np.ndarray, flags: np.ndarray, sample_rate: float,
               low_freq: float, freq_step: float, dm: float,
               collapse: bool = False) -> Dedispersion:
    """Shift each channel earlier in time by its dispersion delay.

    Samples that would come from outside the data (beyond the end, or
    before the start when the shifts are negative) are set to zero and
    flagged. The inputs are not modified.

    Parameters
    ----------
    data
        Samples indexed by time then frequency
    flags
        Boolean flags of the same shape
    sample_rate
        Samples per second
    low_freq
        Frequency of channel 0, in MHz
    freq_step
        Frequency difference between adjacent channels, in MHz
    dm
        Dispersion measure
    collapse
        If true, replace every channel by the average of the unflagged
        channels at the same time. Time samples with no unflagged channels
        become zero and flagged.

    Returns
    -------
    dedispersion
        Dedispersed data and flags, and the per-channel shifts
    """
    data = np.asarray(data)
    flags = np.asarray(flags, dtype=np.bool_)
    if data.ndim != 2:
        raise ValueError('data must be indexed by time and frequency')
    if data.shape != flags.shape:
        raise ValueError('shape mismatch')
    n_times, n_freqs = data.shape
    shifts = compute_shifts(n_freqs, sample_rate, low_freq, freq_step, dm)

    out = data.copy()
    out_flags = flags.copy()
    times = np.arange(n_times)
    for freq, shift in enumerate(shifts):
        if shift == 0:
            continue
        src = times + shift
        inside = (src >= 0) & (src < n_times)
        out[inside, freq] = data[src[inside], freq]
        out[~inside, freq] = 0
        out_flags[inside, freq] = flags[src[inside], freq]
        out_flags[~inside, freq] = True

    if collapse:
        valid = ~out_flags
        counts = np.sum(valid, axis=1)
        sums = np.sum(np.where(valid, out, 0), axis=1)
        average = np.where(counts > 0, sums / np.maximum(counts, 1), 0)
        out[:] = average[:, np.newaxis]
        out_flags[:] = (counts == 0)[:, np.newaxis]
    return Dedispersion(out, out_flags, shifts)


def scale(values: np.ndarray) -> np.ndarray:
    """Linearly map `values` onto [0, 1].

    If all the values are equal, the result is all zeros.
    """
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return values.copy()
    low = np.min(values)
    high = np.max(values)
    if high == low:
        return np.zeros_like(values)
    return (values - low) / (high - low)


def signal_to_noise(profile: np.ndarray) -> float:
    """Signal-to-noise ratio of a pulse profile, as (max - mean) / RMS.

    Returns zero for an empty or all-zero profile.
    """
    profile = np.asarray(profile, dtype=np.float64)
    if profile.size == 0:
        return 0.0
    rms = math.sqrt(float(np.mean(profile**2)))
    if rms == 0.0:
        return 0.0
    return (float(np.max(profile)) - float(np.mean(profile))) / rms


def fold(data: np.ndarray, flags: np.ndarray, sample_rate: float, period: float,
         skip: int = 0, n_periods: int = 1) -> PulseProfile:
    """Fold (dedispersed) data at a trial period.

    Each unflagged sample at time index `t` is accumulated into bin
    ``round(t mod samples_per_period)`` and each bin is averaged over its
    contributions. The resulting profile is scaled to [0, 1].

    Parameters
    ----------
    data
        Samples indexed by time then frequency (or just time)
    flags
        Boolean flags of the same shape
    sample_rate
        Samples per second
    period
        Trial period in seconds
    skip
        Number of time samples to ignore at the start and end of the data.
        After :func:`dedisperse`, use :attr:`Dedispersion.max_shift`.
    n_periods
        Number of periods to show in the profile

    Returns
    -------
    profile
        Scaled profile, the number of samples in each bin and the
        signal-to-noise ratio of the profile
    """
    data = np.asarray(data)
    flags = np.asarray(flags, dtype=np.bool_)
    if data.shape != flags.shape:
        raise ValueError('shape mismatch')
    if data.ndim == 1:
        data = data[:, np.newaxis]
        flags = flags[:, np.newaxis]
    if data.ndim != 2:
        raise ValueError('data must be indexed by time and frequency')
    samples_per_period = sample_rate * period * n_periods
    if not samples_per_period > 0:
        raise ValueError('sample_rate, period and n_periods must be positive')
    if skip < 0:
        raise ValueError('skip must be non-negative')
    n_bins = int(math.ceil(samples_per_period))
    n_times = data.shape[0]

    times = np.arange(skip, max(n_times - skip, skip))
    bins = np.floor(np.mod(times, samples_per_period) + 0.5).astype(np.int64)
    bins = np.minimum(bins, n_bins - 1)
    valid = ~flags[times]
    bin_grid = np.broadcast_to(bins[:, np.newaxis], valid.shape)
    sums = np.bincount(bin_grid[valid], weights=data[times][valid].astype(np.float64),
                       minlength=n_bins)
    counts = np.bincount(bin_grid[valid], minlength=n_bins)
    profile = np.where(counts > 0, sums / np.maximum(counts, 1), 0.0)
    profile = scale(profile)
    snr = signal_to_noise(profile)
    _logger.info('folded %d time samples into %d bins: signal to noise ratio is %g',
                 len(times), n_bins, snr)
    return PulseProfile(profile, counts, snr)
