#!/usr/bin/env python
from setuptools import setup, find_packages


tests_require = ['pytest']

setup(
    name="astrosigproc",
    version="0.1.0",
    description="RFI flagging, dedispersion and folding for radio astronomy",
    author="MeerKAT SDP team",
    packages=find_packages('src'),
    package_dir={'': 'src'},
    package_data={'astrosigproc': ['py.typed']},
    install_requires=[
        "numba>=0.36.1",   # Older versions have bugs in median functions
        "numpy>=1.10",
        "scipy"
    ],
    extras_require={
        "test": tests_require
    },
    python_requires=">=3.6",
    tests_require=tests_require,
    zip_safe=False
)
