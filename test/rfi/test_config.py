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


"""Tests for :mod:`astrosigproc.rfi.config`."""

import math

import pytest

from astrosigproc.rfi.config import (
    FlaggerConfig, FlaggerConfigError, FlaggerType, parse_flagger_type, parse_statistics_mode)
from astrosigproc.rfi.stats import StatisticsMode


def test_parse_flagger_type() -> None:
    assert parse_flagger_type('HistorySumThreshold') == FlaggerType.HISTORY_SUM_THRESHOLD
    assert parse_flagger_type(FlaggerType.BEAM_FORMED) == FlaggerType.BEAM_FORMED
    with pytest.raises(FlaggerConfigError, match='illegal flagger selected'):
        parse_flagger_type('Magic')


def test_parse_statistics_mode() -> None:
    assert parse_statistics_mode(None) is None
    assert parse_statistics_mode('MAD') == StatisticsMode.MAD
    assert parse_statistics_mode('Winsorized') == StatisticsMode.WINSORIZED
    assert parse_statistics_mode(StatisticsMode.NORMAL) == StatisticsMode.NORMAL
    with pytest.raises(FlaggerConfigError):
        parse_statistics_mode('median')


def test_validated() -> None:
    config = FlaggerConfig('Intermediate', 2, 0.4, 'normal').validated()
    assert config == FlaggerConfig(FlaggerType.INTERMEDIATE, 2.0, 0.4, StatisticsMode.NORMAL)
    assert isinstance(config.sensitivity, float)


def test_defaults() -> None:
    config = FlaggerConfig().validated()
    assert config.flagger_type == FlaggerType.SUM_THRESHOLD
    assert config.sensitivity == 1.0
    assert config.sir_eta == 0.2
    assert config.statistics is None


@pytest.mark.parametrize('sensitivity', [0.0, -1.0, math.inf, math.nan])
def test_bad_sensitivity(sensitivity: float) -> None:
    with pytest.raises(FlaggerConfigError):
        FlaggerConfig(sensitivity=sensitivity).validated()


@pytest.mark.parametrize('sir_eta', [-0.1, 1.0, 1.5])
def test_bad_sir_eta(sir_eta: float) -> None:
    with pytest.raises(FlaggerConfigError):
        FlaggerConfig(sir_eta=sir_eta).validated()


def test_numeric_strings() -> None:
    config = FlaggerConfig(sensitivity='2', sir_eta='0.25').validated()
    assert config.sensitivity == 2.0
    assert config.sir_eta == 0.25


@pytest.mark.parametrize('field', ['sensitivity', 'sir_eta'])
@pytest.mark.parametrize('value', ['lots', None, [1.0]])
def test_not_a_number(field: str, value: object) -> None:
    with pytest.raises(FlaggerConfigError, match='must be a number'):
        FlaggerConfig(**{field: value}).validated()


def test_config_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        FlaggerConfig('Magic').validated()


class TestFromEnviron:
    def test_empty(self) -> None:
        assert FlaggerConfig.from_environ({}) == FlaggerConfig().validated()

    def test_all(self) -> None:
        environ = {
            'ASTROSIGPROC_FLAGGER': 'BeamFormedSmoothed',
            'ASTROSIGPROC_SENSITIVITY': '1.5',
            'ASTROSIGPROC_SIR_ETA': '0.3',
            'ASTROSIGPROC_STATISTICS': 'winsorized',
            'UNRELATED': 'x'
        }
        config = FlaggerConfig.from_environ(environ)
        assert config == FlaggerConfig(FlaggerType.BEAM_FORMED_SMOOTHED, 1.5, 0.3,
                                       StatisticsMode.WINSORIZED)

    def test_kwargs_defaults(self) -> None:
        environ = {'ASTROSIGPROC_SENSITIVITY': '3'}
        config = FlaggerConfig.from_environ(environ, flagger_type='Threshold', sensitivity=2.0)
        assert config.flagger_type == FlaggerType.THRESHOLD
        assert config.sensitivity == 3.0

    def test_os_environ(self, monkeypatch) -> None:
        monkeypatch.setenv('ASTROSIGPROC_FLAGGER', 'Intermediate')
        monkeypatch.delenv('ASTROSIGPROC_SENSITIVITY', raising=False)
        monkeypatch.delenv('ASTROSIGPROC_SIR_ETA', raising=False)
        monkeypatch.delenv('ASTROSIGPROC_STATISTICS', raising=False)
        assert FlaggerConfig.from_environ().flagger_type == FlaggerType.INTERMEDIATE

    def test_bad_number(self) -> None:
        with pytest.raises(FlaggerConfigError, match='ASTROSIGPROC_SIR_ETA'):
            FlaggerConfig.from_environ({'ASTROSIGPROC_SIR_ETA': 'lots'})

    def test_bad_flagger(self) -> None:
        with pytest.raises(FlaggerConfigError):
            FlaggerConfig.from_environ({'ASTROSIGPROC_FLAGGER': 'sumthreshold'})
