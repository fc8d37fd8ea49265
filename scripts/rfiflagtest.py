#!/usr/bin/env python

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

"""Test script that runs RFI flagging on random or real data."""

import argparse
import concurrent.futures
import logging
import time

import numpy as np

from astrosigproc.rfi.config import FlaggerConfig, FlaggerType
from astrosigproc.rfi.host import POST_CORRELATION_TYPES, flag_subbands, make_flagger


def generate_data(times, subbands, channels, pols, rfi_fraction):
    rs = np.random.RandomState(seed=1)
    shape = (times, subbands, channels, pols)
    # This is done a time at a time to keep memory usage low
    out = np.empty(shape, np.complex64)
    for i in range(times):
        real = rs.standard_normal(size=shape[1:]).astype(np.float32)
        imag = rs.standard_normal(size=shape[1:]).astype(np.float32)
        out[i] = real + 1j * imag
        rfi = rs.random_sample(shape[1:3]) < rfi_fraction
        out[i][rfi] *= 20.0
    return out


def benchmark_post_correlation(args, config, data):
    if args.pool == 'none':
        pool = None
    elif args.pool == 'process':
        pool = concurrent.futures.ProcessPoolExecutor(args.workers)
    elif args.pool == 'thread':
        pool = concurrent.futures.ThreadPoolExecutor(args.workers)
    else:
        raise argparse.ArgumentError(None, f'unhandled value {args.pool} for --pool')
    try:
        # Warmup (compiles the numba kernels)
        flag_subbands(config, data[:1, :1], executor=pool)
        start = time.time()
        flags = flag_subbands(config, data, executor=pool)
        end = time.time()
        print("CPU time (ms):", (end - start) * 1000.0)
    finally:
        if pool is not None:
            pool.shutdown()
    return flags


def benchmark_time_series(args, config, data):
    # Treat each subband/channel as a separate time series
    power = np.abs(data)**2
    series = power.transpose(1, 2, 3, 0).reshape(-1, power.shape[3], power.shape[0])
    flagger = make_flagger(*config)
    flags = np.empty((series.shape[0], series.shape[2]), np.bool_)
    if config.flagger_type in (FlaggerType.BEAM_FORMED, FlaggerType.BEAM_FORMED_SMOOTHED):
        series = np.sum(series, axis=1)
    flagger(series[0])
    start = time.time()
    for i in range(series.shape[0]):
        flags[i] = flagger(series[i])
    end = time.time()
    print("CPU time (ms):", (end - start) * 1000.0)
    return flags


def main():
    parser = argparse.ArgumentParser()

    group = parser.add_argument_group('Data selection')
    group.add_argument('--times', '-t', type=int, default=64)
    group.add_argument('--subbands', '-s', type=int, default=4)
    group.add_argument('--channels', '-c', type=int, default=1024)
    group.add_argument('--pols', type=int, default=2)
    group.add_argument('--rfi', type=float, default=0.01, help='fraction of RFI channels')
    group.add_argument('--file', type=str,
                       help='specify a real data file (.npy, indexed by time, subband, '
                            'channel and polarization)')

    group = parser.add_argument_group('Parameters')
    group.add_argument('--flagger', '-f', default=FlaggerType.SUM_THRESHOLD.value,
                       choices=[t.value for t in FlaggerType])
    group.add_argument('--sensitivity', type=float, default=1.0)
    group.add_argument('--sir-eta', type=float, default=0.2)
    group.add_argument('--statistics', choices=('normal', 'winsorized', 'mad'))
    group.add_argument('--pool', choices=('none', 'process', 'thread'), default='none',
                       help='parallelization method')
    group.add_argument('--workers', type=int, help='Number of parallel workers')
    parser.add_argument('--log-level', default='INFO')

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())

    config = FlaggerConfig(args.flagger, args.sensitivity, args.sir_eta,
                           args.statistics).validated()
    if args.file is not None:
        if args.file.endswith('.npy'):
            data = np.load(args.file)
        else:
            parser.error("Don't know how to handle " + args.file)
    else:
        data = generate_data(args.times, args.subbands, args.channels, args.pols, args.rfi)

    if config.flagger_type in POST_CORRELATION_TYPES:
        flags = benchmark_post_correlation(args, config, data)
    else:
        flags = benchmark_time_series(args, config, data)
    print('{:.4f}% flagged'.format(100.0 * np.sum(flags) / flags.size))


if __name__ == '__main__':
    main()
