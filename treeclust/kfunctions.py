#!/usr/bin/env python

"""File: kfunctions.py
Module to estimate border-corrected univariate and cross-type K-functions of
point patterns on a fixed radius sequence, and to correct them for
community-wide inhomogeneity by subtracting a heterospecific curve.

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
import pandas
from matplotlib import pyplot

from .config import RMAX, CORRECTION
from .errors import WindowMismatchError
from .pointpatterns import PointPattern
from .utils import AlmostImmutable, sensibly_divide, readonly

_PI = numpy.pi


def radii(rmax=RMAX):
    """
    Construct the radius sequence 0, 1, ..., rmax shared by all curves in
    a run

    """
    return numpy.arange(int(rmax) + 1, dtype=numpy.float64)


class KCurve(AlmostImmutable):
    """
    Represent an estimated K-function on a radius sequence

    Parameters
    ----------
    r : array-like
        Radii at which the curve is evaluated.
    empirical : array-like
        Estimated values. NaN marks radii where the estimate is undefined.
    theoretical : array-like
        Values under the null model.
    window : Window
        Window within which the neighbors were observed. Curves from
        different windows cannot be combined.
    neligible : array-like, optional
        Number of border-eligible reference points at each radius.

    """

    def __init__(self, r, empirical, theoretical, window, neligible=None):
        r = numpy.array(r, dtype=numpy.float64)
        empirical = numpy.array(empirical, dtype=numpy.float64)
        theoretical = numpy.array(theoretical, dtype=numpy.float64)
        if not (r.ndim == 1 and empirical.shape == r.shape and
                theoretical.shape == r.shape):
            raise ValueError("r, empirical and theoretical must be 1d arrays "
                             "of equal length")
        self.r = readonly(r)
        self.empirical = readonly(empirical)
        self.theoretical = readonly(theoretical)
        self.window = window
        if neligible is not None:
            neligible = readonly(numpy.array(neligible, dtype=numpy.int64))
        self.neligible = neligible

    def __len__(self):
        return len(self.r)

    def __repr__(self):
        return "{}(rmax={:g}, defined={})".format(
            self.__class__.__name__, self.r[-1] if len(self) else 0.0,
            self.defined)

    @property
    def defined(self):
        """
        True if the empirical curve is defined at every radius

        """
        return bool(numpy.all(numpy.isfinite(self.empirical)))

    def compatible(self, other):
        """
        Check whether another curve shares the radius sequence and window of
        this curve

        """
        return (numpy.array_equal(self.r, other.r) and
                self.window == other.window)

    def to_frame(self):
        """
        Return the curve as a DataFrame with the columns 'r', 'empirical' and
        'theoretical'

        """
        return pandas.DataFrame({'r': self.r, 'empirical': self.empirical,
                                 'theoretical': self.theoretical})

    def plot(self, axes=None, linewidth=2.0, null=False, null_kw=None,
             **kwargs):
        """
        Plot the empirical curve

        Parameters
        ----------
        axes : Axes, optional
            Axes instance to add the curve to. If None (default), the current
            Axes instance is used if any, or a new one created.
        linewidth : scalar, optional
            The width of the line showing the curve.
        null : bool, optional
            If True, overlay the theoretical curve. The style of this line may
            be customized using null_kw.
        null_kw : dict, optional
            Keyword arguments to pass to `axes.plot` when plotting the
            theoretical curve.
        **kwargs : dict, optional
            Additional keyword arguments to pass to `axes.plot`. Note in
            particular the keywords 'linestyle', 'color' and 'label'.

        Returns
        -------
        list
            List of handles to the Line2D instances added to the plot, in the
            following order: empirical curve, theoretical curve (optional).

        """
        if axes is None:
            axes = pyplot.gca()

        lines = axes.plot(self.r, self.empirical, linewidth=linewidth,
                          **kwargs)
        if null:
            lines += axes.plot(self.r, self.theoretical, linestyle='dashed',
                               **(null_kw or {}))
        return lines


def neighbor_counts(reference, comparison, r):
    """
    Count the comparison points within each radius of each reference point

    A point is never counted as its own neighbor: the diagonal is skipped when
    both patterns are the same object, pairs with equal ids are skipped when
    both patterns carry ids, and otherwise pairs at zero distance are skipped.

    Parameters
    ----------
    reference, comparison : PointPattern
        Patterns to count neighbors between.
    r : array-like
        Radii.

    Returns
    -------
    ndarray
        Integer array where element [i, k] is the number of comparison points
        within distance r[k] (inclusive) of reference point i.

    """
    r = numpy.asarray(r, dtype=numpy.float64)
    d = PointPattern.pairwise_distances(reference, comparison)
    if reference is comparison:
        numpy.fill_diagonal(d, numpy.inf)
    elif reference.ids is not None and comparison.ids is not None:
        d[reference.ids[:, numpy.newaxis] ==
          comparison.ids[numpy.newaxis, :]] = numpy.inf
    else:
        d[d == 0.0] = numpy.inf

    counts = numpy.empty((len(reference), len(r)), dtype=numpy.int64)
    for (k, rval) in enumerate(r):
        counts[:, k] = numpy.sum(d <= rval, axis=1)
    return counts


def _border_estimate(reference, comparison, r, edge_correction):
    if edge_correction != 'border':
        raise ValueError("unknown edge correction: {}"
                         .format(edge_correction))
    if r is None:
        r = radii()
    r = numpy.asarray(r, dtype=numpy.float64)

    window = comparison.window
    if not window.polygon.covers(reference.window.polygon):
        raise WindowMismatchError("the window of the reference pattern must "
                                  "lie inside the window of the comparison "
                                  "pattern")

    # Reference points are eligible at radius r if their whole disc of radius
    # r lies inside the window where neighbors are observed
    eligible = (reference.border_distances(window)[:, numpy.newaxis] >=
                r[numpy.newaxis, :])
    neligible = numpy.sum(eligible, axis=0)

    counts = neighbor_counts(reference, comparison, r)
    total = numpy.sum(counts * eligible, axis=0)

    empirical = sensibly_divide(total, neligible * comparison.intensity())
    theoretical = _PI * r * r
    return KCurve(r, empirical, theoretical, window, neligible=neligible)


def univariate(pattern, r=None, edge_correction=CORRECTION):
    """
    Estimate the border-corrected K-function of a point pattern

    For each radius, only points at least that far from the window boundary
    serve as reference points. The estimate is the mean number of other points
    within the radius of the eligible points, divided by the intensity of the
    pattern. Where no point is eligible the estimate is NaN.

    Parameters
    ----------
    pattern : PointPattern
        Pattern to analyze.
    r : array-like, optional
        Radii at which to evaluate the K-function. Defaults to
        `radii(RMAX)`.
    edge_correction : str {'border'}, optional
        Edge correction to apply.

    Returns
    -------
    KCurve
        Estimated curve, with the theoretical curve pi * r**2.

    """
    return _border_estimate(pattern, pattern, r, edge_correction)


def cross_type(reference, comparison, r=None, edge_correction=CORRECTION):
    """
    Estimate the border-corrected cross-type K-function of two point patterns

    The eligibility test is applied to the points of `reference`, measuring
    distances to the boundary of the window of `comparison`, which must
    contain the window of `reference`. Neighbors are counted among the points
    of `comparison`, and the estimate is normalized by the intensity of
    `comparison`. The estimate is therefore not symmetric in its arguments.

    Parameters
    ----------
    reference : PointPattern
        Pattern whose points serve as reference points.
    comparison : PointPattern
        Pattern whose points are counted as neighbors.
    r : array-like, optional
        Radii at which to evaluate the K-function. Defaults to
        `radii(RMAX)`.
    edge_correction : str {'border'}, optional
        Edge correction to apply.

    Returns
    -------
    KCurve
        Estimated curve, with the theoretical curve pi * r**2.

    """
    return _border_estimate(reference, comparison, r, edge_correction)


def poisson_curve(r, window):
    """
    Return the K-function of complete spatial randomness, pi * r**2, as both
    empirical and theoretical curve

    This is the heterospecific curve used when a site has no heterospecific
    points to estimate one from.

    """
    r = numpy.asarray(r, dtype=numpy.float64)
    kcsr = _PI * r * r
    return KCurve(r, kcsr, kcsr, window)


def correct(con, het):
    """
    Subtract a heterospecific K-curve from a conspecific one

    Both the empirical and the theoretical curves are subtracted radius by
    radius. A WindowMismatchError is raised if the curves do not share radius
    sequence and window.

    Parameters
    ----------
    con : KCurve
        Conspecific curve.
    het : KCurve
        Heterospecific curve.

    Returns
    -------
    KCurve
        Corrected curve. Radii where either input is undefined stay
        undefined.

    """
    if not con.compatible(het):
        raise WindowMismatchError("curves estimated on different radius "
                                  "sequences or in different windows cannot "
                                  "be combined: {!r} and {!r}"
                                  .format(con.window, het.window))
    return KCurve(con.r, con.empirical - het.empirical,
                  con.theoretical - het.theoretical, con.window,
                  neligible=con.neligible)
