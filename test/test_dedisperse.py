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


"""Tests for :mod:`astrosigproc.dedisperse`."""

import numpy as np
import pytest

from astrosigproc import dedisperse


def test_delays() -> None:
    delays = dedisperse.compute_delays(2, 100.0, 100.0, 10.0)
    np.testing.assert_allclose(delays, [4148.808 * 10.0 * (1e-4 - 0.25e-4), 0.0])


@pytest.mark.parametrize('freq_step', [0.5, -0.5])
def test_reference_channel(freq_step: float) -> None:
    shifts = dedisperse.compute_shifts(64, 1000.0, 1200.0, freq_step, 57.0)
    ref = np.argmax(dedisperse.channel_frequencies(64, 1200.0, freq_step))
    assert shifts[ref] == 0
    assert np.all(shifts >= 0)
    # Lower frequencies are delayed more
    if freq_step > 0:
        assert np.all(np.diff(shifts) <= 0)
    else:
        assert np.all(np.diff(shifts) >= 0)


def test_bad_frequencies() -> None:
    with pytest.raises(ValueError):
        dedisperse.compute_delays(10, 5.0, -1.0, 1.0)
    with pytest.raises(ValueError):
        dedisperse.compute_delays(0, 100.0, 1.0, 1.0)


class TestDedisperse:
    def setup_method(self) -> None:
        # Use a fixed seed to make the test repeatable
        rs = np.random.RandomState(seed=1)
        self.data = rs.standard_normal((100, 2)).astype(np.float32)
        self.flags = rs.random_sample((100, 2)) < 0.1

    def test_zero_dm(self) -> None:
        result = dedisperse.dedisperse(self.data, self.flags, 10.0, 100.0, 100.0, 0.0)
        np.testing.assert_array_equal(result.shifts, 0)
        assert result.max_shift == 0
        assert result.data.dtype == self.data.dtype
        assert result.data.tobytes() == self.data.tobytes()
        np.testing.assert_array_equal(result.flags, self.flags)

    def test_shift(self) -> None:
        # Channel 0 is delayed by 3.11 s, i.e. 31 samples
        orig_data = self.data.copy()
        orig_flags = self.flags.copy()
        result = dedisperse.dedisperse(self.data, self.flags, 10.0, 100.0, 100.0, 10.0)
        np.testing.assert_array_equal(result.shifts, [31, 0])
        assert result.max_shift == 31
        np.testing.assert_array_equal(result.data[:69, 0], self.data[31:, 0])
        np.testing.assert_array_equal(result.flags[:69, 0], self.flags[31:, 0])
        np.testing.assert_array_equal(result.data[69:, 0], 0)
        assert np.all(result.flags[69:, 0])
        np.testing.assert_array_equal(result.data[:, 1], self.data[:, 1])
        np.testing.assert_array_equal(result.flags[:, 1], self.flags[:, 1])
        # Inputs are not modified
        np.testing.assert_array_equal(self.data, orig_data)
        np.testing.assert_array_equal(self.flags, orig_flags)

    def test_shift_beyond_end(self) -> None:
        result = dedisperse.dedisperse(self.data, self.flags, 100.0, 100.0, 100.0, 10.0)
        assert result.max_shift > 100
        np.testing.assert_array_equal(result.data[:, 0], 0)
        assert np.all(result.flags[:, 0])

    def test_negative_shift(self) -> None:
        # Negative DM gives negative shifts, padding the start instead of the end
        result = dedisperse.dedisperse(self.data, self.flags, 10.0, 100.0, 100.0, -10.0)
        np.testing.assert_array_equal(result.shifts, [-31, 0])
        assert result.max_shift == 31
        np.testing.assert_array_equal(result.data[31:, 0], self.data[:69, 0])
        np.testing.assert_array_equal(result.flags[31:, 0], self.flags[:69, 0])
        np.testing.assert_array_equal(result.data[:31, 0], 0)
        assert np.all(result.flags[:31, 0])
        np.testing.assert_array_equal(result.data[:, 1], self.data[:, 1])

    def test_negative_sample_rate(self) -> None:
        data = np.ones((50, 4))
        flags = np.zeros(data.shape, np.bool_)
        result = dedisperse.dedisperse(data, flags, -100.0, 400.0, 100.0, 20.0)
        assert result.shifts.tolist() == [-34, -16, -6, 0]
        assert np.all(result.flags[:34, 0])
        assert not np.any(result.flags[34:, 0])

    def test_collapse(self) -> None:
        data = np.array([[1.0, 3.0], [2.0, 5.0], [7.0, 9.0]])
        flags = np.array([[False, False], [True, False], [True, True]])
        result = dedisperse.dedisperse(data, flags, 10.0, 100.0, 100.0, 0.0, collapse=True)
        np.testing.assert_array_equal(result.data, [[2.0, 2.0], [5.0, 5.0], [0.0, 0.0]])
        np.testing.assert_array_equal(result.flags, [[False, False], [False, False], [True, True]])

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match='shape mismatch'):
            dedisperse.dedisperse(self.data, self.flags[:99], 10.0, 100.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            dedisperse.dedisperse(self.data[:, 0], self.flags[:, 0], 10.0, 100.0, 100.0, 0.0)


def test_scale() -> None:
    np.testing.assert_allclose(dedisperse.scale(np.array([1.0, 2.0, 3.0])), [0.0, 0.5, 1.0])
    np.testing.assert_array_equal(dedisperse.scale(np.full(5, 4.0)), 0.0)


def test_signal_to_noise() -> None:
    assert dedisperse.signal_to_noise(np.array([0.0, 0.0, 0.0, 1.0])) == pytest.approx(1.5)
    assert dedisperse.signal_to_noise(np.zeros(10)) == 0.0
    assert dedisperse.signal_to_noise(np.array([])) == 0.0


class TestFold:
    def setup_method(self) -> None:
        # Pulse at 3 samples into each 10-sample period
        self.data = (np.arange(100) % 10 == 3).astype(np.float32)
        self.flags = np.zeros(100, np.bool_)

    def test_simple(self) -> None:
        result = dedisperse.fold(self.data, self.flags, 10.0, 1.0)
        expected = np.zeros(10)
        expected[3] = 1.0
        np.testing.assert_array_equal(result.profile, expected)
        np.testing.assert_array_equal(result.counts, 10)
        assert result.snr == pytest.approx(0.9 / np.sqrt(0.1))

    def test_two_periods(self) -> None:
        result = dedisperse.fold(self.data, self.flags, 10.0, 1.0, n_periods=2)
        assert result.profile.shape == (20,)
        assert np.flatnonzero(result.profile).tolist() == [3, 13]
        np.testing.assert_array_equal(result.counts, 5)

    def test_skip(self) -> None:
        result = dedisperse.fold(self.data, self.flags, 10.0, 1.0, skip=5)
        assert np.sum(result.counts) == 90
        assert result.profile[3] == 1.0

    def test_flags(self) -> None:
        flags = self.data > 0
        result = dedisperse.fold(self.data, flags, 10.0, 1.0)
        assert result.counts[3] == 0
        np.testing.assert_array_equal(result.profile, 0.0)
        assert result.snr == 0.0

    def test_fractional_period(self) -> None:
        result = dedisperse.fold(self.data, self.flags, 10.0, 0.95)
        assert result.profile.shape == (10,)
        assert np.sum(result.counts) == 100

    def test_multichannel(self) -> None:
        data = np.stack([self.data, 2 * self.data], axis=1)
        flags = np.zeros(data.shape, np.bool_)
        result = dedisperse.fold(data, flags, 10.0, 1.0)
        np.testing.assert_array_equal(result.counts, 20)
        assert result.profile[3] == 1.0

    def test_bad_period(self) -> None:
        with pytest.raises(ValueError):
            dedisperse.fold(self.data, self.flags, 10.0, 0.0)

    def test_bad_skip(self) -> None:
        with pytest.raises(ValueError, match='skip'):
            dedisperse.fold(self.data, self.flags, 10.0, 1.0, skip=-1)

    def test_skip_beyond_end(self) -> None:
        result = dedisperse.fold(self.data, self.flags, 10.0, 1.0, skip=60)
        np.testing.assert_array_equal(result.counts, 0)
        assert result.snr == 0.0


def test_folding_raises_snr() -> None:
    """Folding more periods of a noisy pulse gives a cleaner profile."""
    rs = np.random.RandomState(seed=1)
    rate = 50.0
    snrs = {}
    for periods in [1, 16, 64]:
        n = int(rate) * periods
        data = rs.standard_normal(n)
        data[np.arange(n) % 50 == 10] += 5.0
        flags = np.zeros(n, np.bool_)
        snrs[periods] = dedisperse.fold(data, flags, rate, 1.0).snr
    assert snrs[16] > snrs[1]
    assert snrs[64] > 2 * snrs[1]


def test_dedisperse_and_fold() -> None:
    """Removing the dispersion delay lines up the pulse across channels."""
    n_times = 500
    sample_rate = 100.0
    dm = 20.0
    shifts = dedisperse.compute_shifts(4, sample_rate, 400.0, 100.0, dm)
    assert shifts.tolist() == [34, 16, 6, 0]
    data = np.zeros((n_times, 4), np.float32)
    for freq, shift in enumerate(shifts):
        # A pulse at 10 samples into each 50-sample period, arriving late
        data[:, freq] = (np.arange(n_times) - shift) % 50 == 10
    flags = np.zeros(data.shape, np.bool_)

    aligned = dedisperse.dedisperse(data, flags, sample_rate, 400.0, 100.0, dm, collapse=True)
    smeared = dedisperse.dedisperse(data, flags, sample_rate, 400.0, 100.0, 0.0, collapse=True)
    aligned_profile = dedisperse.fold(aligned.data, aligned.flags, sample_rate, 0.5,
                                      skip=aligned.max_shift)
    smeared_profile = dedisperse.fold(smeared.data, smeared.flags, sample_rate, 0.5)
    assert np.flatnonzero(aligned_profile.profile).tolist() == [10]
    assert np.flatnonzero(smeared_profile.profile).tolist() == [10, 16, 26, 44]
    assert aligned_profile.snr > 2 * smeared_profile.snr
