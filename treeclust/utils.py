#!/usr/bin/env python

"""File: utils.py
Module defining classes and functions that may come in handy throughout the
package

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


class AlmostImmutable(object):
    """
    A base class for "almost immutable" objects: instance attributes that have
    already been assigned cannot (easily) be reassigned or deleted, but
    creating new attributes is allowed.

    """

    def __setattr__(self, name, value):
        if hasattr(self, name):
            raise TypeError("{} instances do not support attribute "
                            "reassignment".format(self.__class__.__name__))
        object.__setattr__(self, name, value)

    def __delattr__(self, name):
        raise TypeError("{} instances do not support attribute deletion"
                        .format(self.__class__.__name__))


def sensibly_divide(num, denom):
    """
    Sensibly divide two numbers or arrays of numbers (or any combination
    thereof)

    Sensibly in this case means that a zero or nan numerator over a zero
    denominator gives nan instead of a warning, while a non-zero numerator
    over a zero denominator still gives inf. The result is always a float
    array.

    :num: numerator
    :denom: denominator
    :returns: num / denom, sensibly

    """
    num_bc, denom_bc = numpy.broadcast_arrays(num, denom)
    num_bc = numpy.array(num_bc, dtype=numpy.float64)
    denom_bc = numpy.array(denom_bc, dtype=numpy.float64)

    denom_zero = (denom_bc == 0.0)
    if numpy.any(denom_zero):
        problems = numpy.logical_and(
            denom_zero,
            numpy.logical_or(num_bc == 0.0, numpy.isnan(num_bc)))
        num_bc[problems] = numpy.nan
        denom_bc[problems] = 1.0

    with numpy.errstate(divide='ignore'):
        return num_bc / denom_bc


def as_xy(points):
    """
    Coerce a collection of planar points to an n-by-2 float array

    :points: sequence of coordinate pairs, an n-by-2 array-like, or an object
             exposing an `xy` array (such as a `PointPattern`)
    :returns: new n-by-2 float array

    """
    xy = getattr(points, 'xy', points)
    xy = numpy.array(xy, dtype=numpy.float64)
    if xy.size == 0:
        return numpy.empty((0, 2))
    xy = numpy.atleast_2d(xy)
    if xy.ndim != 2 or xy.shape[1] != 2:
        raise ValueError("points must be given as coordinate pairs, got an "
                         "array of shape {}".format(xy.shape))
    return xy


def readonly(arr):
    """
    Return a read-only view of an array

    """
    view = numpy.asarray(arr).view()
    view.flags.writeable = False
    return view
