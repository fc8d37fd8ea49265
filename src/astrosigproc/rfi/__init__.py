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

"""RFI flagging package.

The package consists of a number of building blocks for *statistics*,
*thresholding* and *dilation*. Statistics estimate the level and spread of
the clean data in one interval, robustly against the RFI itself.
Thresholding flags samples (or runs of samples) that are too bright to be
noise, and dilation extends the flags so that what is left unflagged has a
minimum density of good data.

The building blocks are combined into flagger variants in :mod:`.host`,
which are selected by name with :func:`.host.make_flagger`.
"""

MAD_NORMAL = 1.4826
"""Ratio between `median absolute deviation`_ and standard deviation of a Gaussian distribution.

.. _median absolute deviation: https://en.wikipedia.org/wiki/Median_absolute_deviation
"""

WINSORIZED_SCALE = 1.54
"""Variance correction for data winsorized at the 10th and 90th percentiles."""

FIRST_THRESHOLD = 6.0
"""Threshold for single samples in the SumThreshold method, in units of the spread."""

THRESHOLD_FALLOFF = 1.5
"""Rate at which SumThreshold thresholds decrease with window size (ρ in Offringa 2010)."""

HISTORY_THRESHOLD = 7.0
"""Number of history spreads above the history mean at which a whole interval is flagged."""
