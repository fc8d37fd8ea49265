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

"""RFI flaggers that run on the CPU.

A flagger is assembled from a per-polarization *step* (a function that
adds flags to the mask of one power spectrum) and the wrapper for a data
domain:

- :class:`PostCorrelationFlagger` for correlated visibility power, indexed
  by channel and polarization, with optional history of previous intervals;
- :class:`IntermediateFlagger` for per-polarization time series;
- :class:`BeamFormedFlagger` for a single beam-formed time series.

Use :func:`make_flagger` to construct one from a variant name.
"""

import concurrent.futures
import functools
import logging
from typing import Callable, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from . import HISTORY_THRESHOLD
from .config import FlaggerConfig, FlaggerConfigError, FlaggerType
from .history import MIN_HISTORY_SIZE, FlaggerHistory, HistoryWindow
from .sir import sir_operator
from .smooth import gaussian_filter1d
from .stats import Statistics, StatisticsMode, compute_statistics
from .threshold import sum_threshold, threshold


_logger = logging.getLogger(__name__)


class FlaggerParams(NamedTuple):
    sensitivity: float = 1.0
    sir_eta: float = 0.2
    statistics: StatisticsMode = StatisticsMode.MAD


Step = Callable[[np.ndarray, np.ndarray, FlaggerParams], None]


def _sum_threshold_pass(samples: np.ndarray, flags: np.ndarray, params: FlaggerParams,
                        sensitivity: Optional[float] = None) -> None:
    if sensitivity is None:
        sensitivity = params.sensitivity
    statistics = compute_statistics(samples, flags, params.statistics)
    sum_threshold(samples, flags, statistics, sensitivity)


def _smoothed_residual_pass(samples: np.ndarray, flags: np.ndarray, params: FlaggerParams,
                            sigma: float) -> None:
    """Sum-threshold the difference between `samples` and a smoothed version.

    Flagged samples are excluded from the smoothing, so that a bright
    interferer does not raise the estimate of the smooth shape around it.
    """
    smoothed = gaussian_filter1d(samples, sigma, weights=~flags)
    residual = (samples - smoothed).astype(np.float32)
    _sum_threshold_pass(residual, flags, params)


def threshold_step(powers: np.ndarray, flags: np.ndarray, params: FlaggerParams) -> None:
    """Flag samples above a single cutoff."""
    statistics = compute_statistics(powers, flags, params.statistics)
    threshold(powers, flags, statistics, params.sensitivity)


def sum_threshold_step(powers: np.ndarray, flags: np.ndarray, params: FlaggerParams) -> None:
    """Two rounds of statistics and SumThreshold, followed by SIR dilation."""
    _sum_threshold_pass(powers, flags, params)
    _sum_threshold_pass(powers, flags, params)
    flags[:] = sir_operator(flags, params.sir_eta)


def smoothed_sum_threshold_step(powers: np.ndarray, flags: np.ndarray, params: FlaggerParams,
                                final_sensitivity: float = 0.8) -> None:
    """SumThreshold that also compares channels against their neighbours.

    After a first SumThreshold has removed the brightest RFI, the spectrum
    is smoothed and the residual from the smooth shape is thresholded. This
    finds narrow-band RFI riding on a bandpass. A final pass on the powers
    uses the sensitivity scaled by `final_sensitivity`.
    """
    _sum_threshold_pass(powers, flags, params)
    _smoothed_residual_pass(powers, flags, params, 0.5)
    _sum_threshold_pass(powers, flags, params, params.sensitivity * final_sensitivity)


def _check_shape(name: str, array: np.ndarray, shape: Tuple[int, ...]) -> np.ndarray:
    array = np.asarray(array)
    if array.shape != shape:
        raise ValueError('shape mismatch: expected {} of shape {}, not {}'.format(
            name, shape, array.shape))
    return array


def _check_flags(flags: Optional[np.ndarray], n: int) -> np.ndarray:
    if flags is None:
        return np.zeros(n, np.bool_)
    return _check_shape('flags', flags, (n,)).astype(np.bool_)    # Always a copy


class PostCorrelationFlagger:
    """Flag correlated power spectra, one interval at a time.

    Each polarization is flagged independently, starting from the input
    flags, and a channel is flagged in the output if it is flagged in any
    polarization. The union is then dilated with the SIR operator.

    If a `history` is given, each polarization is also compared against
    the preceding intervals, and the whole interval is flagged if its median
    is too high. The history is updated on every call, so an instance must
    only be used for one stream of consecutive intervals, and not from
    multiple threads at once.

    Parameters
    ----------
    step
        Per-polarization flagging step
    params
        Sensitivity, SIR η and statistics estimator
    history
        History of previous intervals, if history flagging is wanted
    integrate_history
        If true (and `history` is given), also run SumThreshold on the sum
        of the spectra in the history, to find channels that are persistently
        slightly bright.
    """

    def __init__(self, step: Step, params: FlaggerParams,
                 history: Optional[FlaggerHistory] = None,
                 integrate_history: bool = False) -> None:
        self.step = step
        self.params = params
        self.history = history
        self.integrate_history = integrate_history

    def _apply_history(self, powers: np.ndarray, flags: np.ndarray,
                       window: HistoryWindow) -> None:
        mode = self.params.statistics
        statistics = compute_statistics(powers, flags, mode)
        if len(window) < MIN_HISTORY_SIZE:
            window.push(statistics, powers)
            return
        if self.integrate_history:
            integrated = window.integrated_powers().astype(np.float32)
            integrated_statistics = compute_statistics(integrated, flags, mode)
            sum_threshold(integrated, flags, integrated_statistics, self.params.sensitivity)
            statistics = compute_statistics(powers, flags, mode)
        mean_median = window.mean_of_medians()
        spread_median = window.spread_of_medians()
        limit = mean_median + HISTORY_THRESHOLD * spread_median
        if statistics.median > limit:
            _logger.debug('median = %g, history mean median = %g, spread = %g: '
                          'flagging whole interval', statistics.median, mean_median,
                          spread_median)
            flags[:] = True
            # Keep the history representative of normal intervals
            statistics = Statistics(statistics.mean, mean_median, statistics.spread)
        window.push(statistics, powers)

    def __call__(self, powers: np.ndarray, valid_samples: Optional[np.ndarray] = None,
                 flags: Optional[np.ndarray] = None) -> np.ndarray:
        """Flag one interval.

        Parameters
        ----------
        powers
            Powers indexed by channel then polarization. Complex
            visibilities are also accepted and converted to power. A 1D
            array is treated as a single polarization.
        valid_samples
            Number of valid samples integrated into each channel. Channels
            with no valid samples are flagged before anything else.
        flags
            Prior per-channel flags

        Returns
        -------
        flags
            New per-channel boolean flags, including the prior flags
        """
        powers = np.asarray(powers)
        if np.iscomplexobj(powers):
            powers = powers.real**2 + powers.imag**2
        if powers.ndim == 1:
            powers = powers[:, np.newaxis]
        if powers.ndim != 2:
            raise ValueError('powers must be indexed by channel and polarization')
        channels, pols = powers.shape
        initial = _check_flags(flags, channels)
        if valid_samples is not None:
            valid_samples = _check_shape('valid_samples', valid_samples, (channels,))
            initial |= valid_samples == 0

        out = initial.copy()
        for pol in range(pols):
            pol_powers = np.ascontiguousarray(powers[:, pol], dtype=np.float32)
            pol_flags = initial.copy()
            self.step(pol_powers, pol_flags, self.params)
            if self.history is not None:
                self._apply_history(pol_powers, pol_flags, self.history[pol])
            out |= pol_flags
        out = sir_operator(out, self.params.sir_eta)
        _logger.debug('flagged %d of %d channels', np.sum(out), channels)
        return out


class IntermediateFlagger:
    """Flag per-polarization time series.

    Each polarization is flagged independently with two rounds of statistics
    and SumThreshold, so that RFI that only shows up in one polarization is
    caught. The union of the flags is dilated with the SIR operator.

    Parameters
    ----------
    params
        Sensitivity, SIR η and statistics estimator
    smooth
        If true, each polarization also gets a pass on its residual from a
        smoothed version.
    sigma
        Standard deviation of the smoothing, in samples
    """

    def __init__(self, params: FlaggerParams, smooth: bool = False, sigma: float = 2.0) -> None:
        self.params = params
        self.smooth = smooth
        self.sigma = sigma

    def __call__(self, samples: np.ndarray, flags: Optional[np.ndarray] = None) -> np.ndarray:
        """Flag samples indexed by polarization then time.

        A 1D array is treated as a single polarization. Returns new flags
        with one entry per time.
        """
        samples = np.asarray(samples)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise ValueError('samples must be indexed by polarization and time')
        initial = _check_flags(flags, samples.shape[1])
        out = initial.copy()
        for pol in range(samples.shape[0]):
            pol_samples = np.ascontiguousarray(samples[pol], dtype=np.float32)
            pol_flags = initial.copy()
            _sum_threshold_pass(pol_samples, pol_flags, self.params)
            _sum_threshold_pass(pol_samples, pol_flags, self.params)
            if self.smooth:
                _smoothed_residual_pass(pol_samples, pol_flags, self.params, self.sigma)
            out |= pol_flags
        return sir_operator(out, self.params.sir_eta)


class BeamFormedFlagger:
    """Flag a single beam-formed time series.

    Parameters
    ----------
    params
        Sensitivity, SIR η and statistics estimator
    smooth
        If true, add a pass on the residual from a smoothed version.
    sigma
        Standard deviation of the smoothing, in samples
    """

    def __init__(self, params: FlaggerParams, smooth: bool = False, sigma: float = 3.0) -> None:
        self.params = params
        self.smooth = smooth
        self.sigma = sigma

    def __call__(self, samples: np.ndarray, flags: Optional[np.ndarray] = None) -> np.ndarray:
        samples = np.asarray(samples)
        if samples.ndim != 1:
            raise ValueError('samples must be 1D')
        samples = np.ascontiguousarray(samples, dtype=np.float32)
        out = _check_flags(flags, samples.shape[0])
        _sum_threshold_pass(samples, out, self.params)
        _logger.debug('samples flagged after 1st iter: %d', np.sum(out))
        _sum_threshold_pass(samples, out, self.params)
        _logger.debug('samples flagged after 2nd iter: %d', np.sum(out))
        if self.smooth:
            _smoothed_residual_pass(samples, out, self.params, self.sigma)
        return sir_operator(out, self.params.sir_eta)


AnyFlagger = Union[PostCorrelationFlagger, IntermediateFlagger, BeamFormedFlagger]

POST_CORRELATION_TYPES = frozenset([
    FlaggerType.THRESHOLD,
    FlaggerType.SUM_THRESHOLD,
    FlaggerType.SMOOTHED_SUM_THRESHOLD,
    FlaggerType.HISTORY_SUM_THRESHOLD,
    FlaggerType.HISTORY_SMOOTHED_SUM_THRESHOLD
])

# Estimators used when none is configured
_DEFAULT_STATISTICS = {
    FlaggerType.SUM_THRESHOLD: StatisticsMode.WINSORIZED,
    FlaggerType.SMOOTHED_SUM_THRESHOLD: StatisticsMode.WINSORIZED,
    FlaggerType.HISTORY_SUM_THRESHOLD: StatisticsMode.WINSORIZED,
    FlaggerType.HISTORY_SMOOTHED_SUM_THRESHOLD: StatisticsMode.WINSORIZED
}


def make_flagger(flagger_type: Union[str, FlaggerType], sensitivity: float = 1.0,
                 sir_eta: float = 0.2,
                 statistics: Union[None, str, StatisticsMode] = None) -> AnyFlagger:
    """Create a flagger from its variant name.

    Every call returns a new instance, with its own history if the variant
    uses one.

    Parameters
    ----------
    flagger_type
        Variant, either as a :class:`~.config.FlaggerType` or its name
        (e.g. ``'SumThreshold'``)
    sensitivity
        Multiplier for the thresholds (higher is less sensitive)
    sir_eta
        η for SIR dilation
    statistics
        Statistics estimator. If not specified, the post-correlation
        SumThreshold variants use winsorized statistics and the others MAD.

    Raises
    ------
    FlaggerConfigError
        if the variant is unknown or a parameter is out of range
    """
    config = FlaggerConfig(flagger_type, sensitivity, sir_eta, statistics).validated()
    flagger_type = config.flagger_type
    mode = config.statistics
    if mode is None:
        mode = _DEFAULT_STATISTICS.get(flagger_type, StatisticsMode.MAD)
    params = FlaggerParams(config.sensitivity, config.sir_eta, mode)
    _logger.info('Selected %s flagger, sensitivity %g, SIR eta %g, %s statistics',
                 flagger_type.value, params.sensitivity, params.sir_eta, mode.value)

    if flagger_type == FlaggerType.THRESHOLD:
        return PostCorrelationFlagger(threshold_step, params)
    elif flagger_type == FlaggerType.SUM_THRESHOLD:
        return PostCorrelationFlagger(sum_threshold_step, params)
    elif flagger_type == FlaggerType.SMOOTHED_SUM_THRESHOLD:
        return PostCorrelationFlagger(smoothed_sum_threshold_step, params)
    elif flagger_type == FlaggerType.HISTORY_SUM_THRESHOLD:
        return PostCorrelationFlagger(sum_threshold_step, params, FlaggerHistory(),
                                      integrate_history=True)
    elif flagger_type == FlaggerType.HISTORY_SMOOTHED_SUM_THRESHOLD:
        step = functools.partial(smoothed_sum_threshold_step, final_sensitivity=0.9)
        return PostCorrelationFlagger(step, params, FlaggerHistory())
    elif flagger_type == FlaggerType.INTERMEDIATE:
        return IntermediateFlagger(params)
    elif flagger_type == FlaggerType.INTERMEDIATE_SMOOTHED:
        return IntermediateFlagger(params, smooth=True)
    elif flagger_type == FlaggerType.BEAM_FORMED:
        return BeamFormedFlagger(params)
    elif flagger_type == FlaggerType.BEAM_FORMED_SMOOTHED:
        return BeamFormedFlagger(params, smooth=True)
    else:
        raise FlaggerConfigError('unhandled flagger type {}'.format(flagger_type))  # pragma: nocover


def _flag_stream(config: FlaggerConfig, powers: np.ndarray,
                 valid_samples: Optional[np.ndarray],
                 flags: Optional[np.ndarray]) -> np.ndarray:
    """Flag all the intervals of one subband, in time order.

    This is a module-level function so that it can be pickled for a process
    pool.
    """
    flagger = make_flagger(*config)
    out = np.empty(powers.shape[:2], np.bool_)
    for t in range(powers.shape[0]):
        out[t] = flagger(powers[t],
                         None if valid_samples is None else valid_samples[t],
                         None if flags is None else flags[t])
    return out


def flag_subbands(config: FlaggerConfig, powers: np.ndarray,
                  valid_samples: Optional[np.ndarray] = None,
                  flags: Optional[np.ndarray] = None,
                  executor: Optional[concurrent.futures.Executor] = None) -> np.ndarray:
    """Flag a block of post-correlation data, with one flagger per subband.

    Subbands are independent streams: each gets its own flagger (and hence
    its own history), which processes the intervals in time order.

    Parameters
    ----------
    config
        Configuration of the flaggers. It must select a post-correlation
        variant.
    powers
        Powers (or complex visibilities) indexed by time, subband, channel
        and optionally polarization
    valid_samples
        Number of valid samples, indexed by time, subband and channel
    flags
        Prior flags, indexed by time, subband and channel
    executor
        Executor for flagging the subbands in parallel. If not specified,
        subbands are processed serially.

    Returns
    -------
    flags
        Boolean flags indexed by time, subband and channel
    """
    config = config.validated()
    if config.flagger_type not in POST_CORRELATION_TYPES:
        raise FlaggerConfigError('{} is not a post-correlation flagger'.format(
            config.flagger_type.value))
    powers = np.asarray(powers)
    if powers.ndim == 3:
        powers = powers[..., np.newaxis]
    if powers.ndim != 4:
        raise ValueError('powers must be indexed by time, subband, channel and polarization')
    shape = powers.shape[:3]
    if valid_samples is not None:
        valid_samples = _check_shape('valid_samples', valid_samples, shape)
    if flags is not None:
        flags = _check_shape('flags', flags, shape)

    def stream_args(subband: int):
        return (config, powers[:, subband],
                None if valid_samples is None else valid_samples[:, subband],
                None if flags is None else flags[:, subband])

    out = np.empty(shape, np.bool_)
    if executor is None:
        for subband in range(shape[1]):
            out[:, subband] = _flag_stream(*stream_args(subband))
    else:
        futures = []     # type: List[concurrent.futures.Future]
        for subband in range(shape[1]):
            futures.append(executor.submit(_flag_stream, *stream_args(subband)))
        for subband, future in enumerate(futures):
            out[:, subband] = future.result()
    return out
