#!/usr/bin/env python

"""File: weights.py
Module to compute per-radius reliability weights for estimated K-curves, used
downstream to discount noisy curves from sparse species and sites.

"""
# Copyright 2015 Daniel Wennberg
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import numpy

from .config import CORRECTION, WEIGHT_TYPE
from .kfunctions import radii

WEIGHT_TYPES = ('border', 'npoints')


def kfunc_weights_calc(pattern_x, pattern_y=None, r=None,
                       correction=CORRECTION, weight_type=WEIGHT_TYPE):
    """
    Compute reliability weights for the K-curve of a pattern, or the
    cross-type K-curve of a pair of patterns

    The weights are the denominators of the ratio estimators behind the
    curves, so that curves pooled with these weights reproduce the pooled
    estimator:

    ``border``
        At each radius, the number of border-eligible points of `pattern_x`
        times the intensity of `pattern_y`.
    ``npoints``
        The number of points of `pattern_x` times the intensity of
        `pattern_y`, constant over the radii.

    Either way the weights are non-negative, grow with the point counts and
    shrink with the window area.

    Parameters
    ----------
    pattern_x : PointPattern
        Reference pattern.
    pattern_y : PointPattern, optional
        Comparison pattern for cross-type curves. Defaults to `pattern_x`.
    r : array-like, optional
        Radii. Defaults to `kfunctions.radii()`.
    correction : str {'border'}, optional
        Edge correction of the curves being weighted.
    weight_type : str {'border', 'npoints'}, optional
        Kind of weights to compute.

    Returns
    -------
    ndarray
        Array of weights, one per radius.

    """
    if correction != 'border':
        raise ValueError("unknown edge correction: {}".format(correction))
    if weight_type not in WEIGHT_TYPES:
        raise ValueError("unknown weight type: {}".format(weight_type))

    if pattern_y is None:
        pattern_y = pattern_x
    if r is None:
        r = radii()
    r = numpy.asarray(r, dtype=numpy.float64)

    intensity = pattern_y.intensity()
    if weight_type == 'npoints':
        return numpy.full(r.shape, len(pattern_x) * intensity)

    bdist = pattern_x.border_distances(pattern_y.window)
    neligible = numpy.sum(bdist[:, numpy.newaxis] >= r[numpy.newaxis, :],
                          axis=0)
    return neligible * intensity
