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

"""Configuration of the RFI flaggers.

A flagger is configured by a variant name, a sensitivity, the η of the SIR
dilation and (optionally) a statistics estimator. Defaults can be overridden
with environment variables:

``ASTROSIGPROC_FLAGGER``
    Flagger variant name (see :class:`FlaggerType`)
``ASTROSIGPROC_SENSITIVITY``
    Sensitivity multiplier (higher is less sensitive)
``ASTROSIGPROC_SIR_ETA``
    SIR η, in the range [0, 1)
``ASTROSIGPROC_STATISTICS``
    One of ``normal``, ``winsorized`` or ``mad``

Invalid values are never replaced by defaults: they raise
:exc:`FlaggerConfigError`.
"""

import enum
import logging
import math
import os
from typing import Any, Mapping, NamedTuple, Optional, Union

from .stats import StatisticsMode


_logger = logging.getLogger(__name__)


class FlaggerType(enum.Enum):
    THRESHOLD = 'Threshold'
    SUM_THRESHOLD = 'SumThreshold'
    SMOOTHED_SUM_THRESHOLD = 'SmoothedSumThreshold'
    HISTORY_SUM_THRESHOLD = 'HistorySumThreshold'
    HISTORY_SMOOTHED_SUM_THRESHOLD = 'HistorySmoothedSumThreshold'
    INTERMEDIATE = 'Intermediate'
    INTERMEDIATE_SMOOTHED = 'IntermediateSmoothed'
    BEAM_FORMED = 'BeamFormed'
    BEAM_FORMED_SMOOTHED = 'BeamFormedSmoothed'


class FlaggerConfigError(ValueError):
    """The flagger configuration is not valid."""


def parse_flagger_type(value: Union[str, FlaggerType]) -> FlaggerType:
    """Look up a flagger variant by name.

    Raises
    ------
    FlaggerConfigError
        if `value` is not the name of a variant
    """
    try:
        return FlaggerType(value)
    except ValueError:
        names = ', '.join(t.value for t in FlaggerType)
        raise FlaggerConfigError(
            'illegal flagger selected: {!r} (must be one of {})'.format(value, names)) from None


def parse_statistics_mode(value: Union[None, str, StatisticsMode]) -> Optional[StatisticsMode]:
    if value is None or isinstance(value, StatisticsMode):
        return value
    try:
        return StatisticsMode(value.lower())
    except (ValueError, AttributeError):
        modes = ', '.join(m.value for m in StatisticsMode)
        raise FlaggerConfigError(
            'unknown statistics mode {!r} (must be one of {})'.format(value, modes)) from None


def _parse_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise FlaggerConfigError('{} must be a number, not {!r}'.format(name, value)) from None


class FlaggerConfig(NamedTuple):
    """Configuration of one flagger instance.

    A `statistics` of ``None`` selects the default estimator of the variant.
    """

    flagger_type: Union[str, FlaggerType] = FlaggerType.SUM_THRESHOLD
    sensitivity: float = 1.0
    sir_eta: float = 0.2
    statistics: Union[None, str, StatisticsMode] = None

    def validated(self) -> 'FlaggerConfig':
        """Check the configuration and normalise names to enums.

        Raises
        ------
        FlaggerConfigError
            if any field is not valid
        """
        flagger_type = parse_flagger_type(self.flagger_type)
        statistics = parse_statistics_mode(self.statistics)
        sensitivity = _parse_float('sensitivity', self.sensitivity)
        sir_eta = _parse_float('SIR eta', self.sir_eta)
        if not (math.isfinite(sensitivity) and sensitivity > 0):
            raise FlaggerConfigError('sensitivity must be positive, not {}'.format(sensitivity))
        if not 0.0 <= sir_eta < 1.0:
            raise FlaggerConfigError('SIR eta must be in the range [0, 1), not {}'.format(sir_eta))
        return FlaggerConfig(flagger_type, sensitivity, sir_eta, statistics)

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None,
                     **kwargs: Any) -> 'FlaggerConfig':
        """Build a configuration from environment variables.

        Keyword arguments provide defaults for variables that are not set.
        """
        if environ is None:
            environ = os.environ
        values = dict(kwargs)
        if 'ASTROSIGPROC_FLAGGER' in environ:
            values['flagger_type'] = environ['ASTROSIGPROC_FLAGGER']
        if 'ASTROSIGPROC_SENSITIVITY' in environ:
            values['sensitivity'] = _parse_float('ASTROSIGPROC_SENSITIVITY',
                                                 environ['ASTROSIGPROC_SENSITIVITY'])
        if 'ASTROSIGPROC_SIR_ETA' in environ:
            values['sir_eta'] = _parse_float('ASTROSIGPROC_SIR_ETA',
                                             environ['ASTROSIGPROC_SIR_ETA'])
        if 'ASTROSIGPROC_STATISTICS' in environ:
            values['statistics'] = environ['ASTROSIGPROC_STATISTICS']
        config = cls(**values).validated()
        _logger.debug('Flagger configuration: %s', config)
        return config
