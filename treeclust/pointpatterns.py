#!/usr/bin/env python

"""File: pointpatterns.py
Module to represent stems as planar point patterns bound to study windows,
and to build the conspecific, heterospecific and adult patterns of each site
and species.

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

import logging
from collections.abc import Sequence
import numpy
from scipy.spatial import distance
from matplotlib import pyplot

from .config import COHORT_LABELS
from .memoize import memoize_method
from .utils import AlmostImmutable, as_xy, readonly
from .windows import Window

logger = logging.getLogger(__name__)


class PointPattern(AlmostImmutable, Sequence):
    """
    Represent a planar point pattern and its associated window

    Parameters
    ----------
    points : sequence
        A sequence of coordinate tuples or an n-by-2 array-like, representing
        the points in the point pattern.
    window : Window
        The window within which the pattern is observed, or any valid `Window`
        constructor argument. A ValueError is raised if the window does not
        contain all points in `points` (points on the boundary are contained).
    ids : sequence, optional
        Identifiers of the points (stem tags), used to make sure a point is
        never counted as its own neighbor when two patterns share points.
    mark : str, optional
        Type label shared by all points in the pattern.

    """

    def __init__(self, points, window, ids=None, mark=None):
        # Avoid copying the window unless needed
        if not isinstance(window, Window):
            window = Window(window)
        self.window = window

        xy = as_xy(points)
        if not numpy.all(window.covers(xy)):
            raise ValueError("Not all points in 'points' are contained inside "
                             "'window'.")
        self._xy = readonly(xy)

        if ids is not None:
            ids = numpy.asarray(ids)
            if ids.shape != (len(xy),):
                raise ValueError("need one id per point, got {} ids for {} "
                                 "points".format(ids.size, len(xy)))
            ids = readonly(ids)
        self.ids = ids
        self.mark = mark

    # Implement abstract methods
    def __getitem__(self, index):
        return self._xy[index]

    def __len__(self):
        return len(self._xy)

    def __repr__(self):
        return "{}(n={}, mark={!r}, area={:g})".format(
            self.__class__.__name__, len(self), self.mark, self.window.area)

    @property
    def xy(self):
        return self._xy

    @classmethod
    def from_frame(cls, frame, window, mark=None):
        """
        Create a PointPattern from the stems in a table that lie in a window

        Stems outside the window are left out. This is the single place where
        window membership decides which stems enter a pattern.

        Parameters
        ----------
        frame : DataFrame
            Stem table with the columns 'x', 'y' and 'tag'.
        window : Window
            Window to bind the pattern to.
        mark : str, optional
            Type label of the pattern.

        Returns
        -------
        PointPattern
            New pattern.

        """
        xy = frame[['x', 'y']].to_numpy(dtype=numpy.float64)
        inside = window.covers(xy)
        return cls(xy[inside], window, ids=frame['tag'].to_numpy()[inside],
                   mark=mark)

    def intensity(self):
        """
        Compute the standard intensity estimate: the number of points in the
        pattern divided by the area of the window

        """
        return len(self) / self.window.area

    @memoize_method
    def border_distances(self, window=None):
        """
        Compute the distance from each point to the boundary of a window

        Parameters
        ----------
        window : Window, optional
            Window whose boundary to measure to. Defaults to the window of the
            pattern.

        Returns
        -------
        ndarray
            Read-only array with one distance per point.

        """
        if window is None:
            window = self.window
        return readonly(window.boundary_distances(self._xy))

    @staticmethod
    def pairwise_distances(pp1, pp2=None):
        """
        Return a matrix of distances between points in point patterns

        :pp1: PointPattern or array-like containing the points to find
              distances between
        :pp2: if not None, distances are calculated from points in pp1 to
              points in pp2 instead of between points in pp1
        :returns: numpy array where element [i, j] contains the distance from
                  pp1[i] to pp1[j], or if pp2 is not None, from pp1[i] to
                  pp2[j]

        """
        ap1 = as_xy(pp1)
        ap2 = ap1 if pp2 is None else as_xy(pp2)
        return distance.cdist(ap1, ap2)

    def unique(self):
        """
        Remove exactly coincident points, keeping the first of each group

        Returns
        -------
        PointPattern
            New pattern, or this pattern if it has no coincident points.

        """
        if len(self) < 2:
            return self
        __, first = numpy.unique(self._xy, axis=0, return_index=True)
        if len(first) == len(self):
            return self
        keep = numpy.sort(first)
        logger.debug(f"Removing {len(self) - len(keep)} coincident points "
                     f"from pattern {self.mark!r}")
        ids = None if self.ids is None else self.ids[keep]
        return type(self)(self._xy[keep], self.window, ids=ids,
                          mark=self.mark)

    def plot_pattern(self, axes=None, marker='o', plot_window=False,
                     window_kw=None, **kwargs):
        """
        Plot the point pattern

        The point pattern can be added to an existing plot via the optional
        'axes' argument.

        :axes: Axes instance to add the point pattern to. If None (default),
               the current Axes instance is used if any, or a new one created.
        :marker: a valid matplotlib marker specification. Defaults to 'o'.
        :plot_window: if True, the window boundary is added to the plot.
        :window_kw: dict of keyword arguments passed on to `Window.plot`.
        :kwargs: additional keyword arguments passed on to `axes.scatter`.
        :returns: the PathCollection returned by `axes.scatter`

        """
        if axes is None:
            axes = pyplot.gca()
            axes.set_aspect('equal')

        if plot_window:
            self.window.plot(axes=axes, **(window_kw or {}))

        kwargs.setdefault('label', self.mark)
        return axes.scatter(self._xy[:, 0], self._xy[:, 1], marker=marker,
                            **kwargs)


class PointPatternBuilder(AlmostImmutable):
    """
    Build the point patterns needed to analyze one species at one site

    Conspecific and heterospecific patterns of the non-reference cohorts are
    bound to the core window of the site (minus sampling). Adult patterns are
    bound to the core window dilated by the analysis radius (plus sampling).
    Stems outside the censused region of their site are disregarded, see
    `WindowRegistry.census_window`.

    Parameters
    ----------
    registry : WindowRegistry
        Windows of all sites.
    labels : sequence, optional
        Cohort names.

    """

    def __init__(self, registry, labels=COHORT_LABELS):
        self.registry = registry
        self.labels = tuple(labels)

    def site_stems(self, stems, site, radius=0):
        """
        Select the stems of a site that lie in its censused region

        The censused region is the full window of the site, or, for sites
        registered without one, the core window dilated by `radius`. See
        `WindowRegistry.census_window`.

        An UnknownSiteError is raised if the site is not registered.

        """
        census = self.registry.census_window(site, radius)
        site_stems = stems.loc[stems['site'] == site]
        inside = census.covers(site_stems[['x', 'y']].to_numpy())
        if not inside.all():
            logger.warning(f"Disregarding {(~inside).sum()} stems outside "
                           f"the censused region of site {site!r}")
            site_stems = site_stems.loc[inside]
        return site_stems

    def conspecific(self, stems, site, species, cohorts):
        """
        Build one pattern per cohort for the focal species

        Parameters
        ----------
        stems : DataFrame
            Stem table as returned from `cohorts.assign_cohorts`.
        site, species :
            Site and focal species.
        cohorts : sequence
            Cohort labels to build patterns for.

        Returns
        -------
        dict
            Mapping from cohort label to `PointPattern` in the core window.

        """
        window = self.registry.core_window(site)
        site_stems = self.site_stems(stems, site)
        focal = site_stems.loc[site_stems['species'] == species]
        return {cohort: PointPattern.from_frame(
                    focal.loc[focal['cohort'] == cohort], window, mark=cohort)
                for cohort in cohorts}

    def heterospecific(self, stems, site, species, cohorts, others=None):
        """
        Build one combined pattern per cohort for the other species at a site

        Exactly coincident points are removed from the combined patterns.

        Parameters
        ----------
        stems : DataFrame
            Stem table as returned from `cohorts.assign_cohorts`.
        site, species :
            Site and focal species.
        cohorts : sequence
            Cohort labels to build patterns for.
        others : iterable, optional
            Species to combine. The focal species is always left out. If None,
            all other species at the site are combined.

        Returns
        -------
        dict
            Mapping from cohort label to `PointPattern` in the core window.

        """
        window = self.registry.core_window(site)
        site_stems = self.site_stems(stems, site)
        if others is None:
            hetero = site_stems['species'] != species
        else:
            others = set(others) - {species}
            hetero = site_stems['species'].isin(list(others))
        hetero = site_stems.loc[hetero]
        return {cohort: PointPattern.from_frame(
                    hetero.loc[hetero['cohort'] == cohort], window,
                    mark='other').unique()
                for cohort in cohorts}

    def adults(self, stems, site, species, radius):
        """
        Build the adult patterns of the focal species and of all other species

        Both patterns are bound to the plus-sampling window: the core window
        of the site dilated by `radius`. Only stems flagged as adults are
        used.

        Returns
        -------
        focal, other : PointPattern
            Adult patterns of the focal species and of the other species (with
            coincident points removed).

        """
        window = self.registry.buffered_window(site, radius)
        site_stems = self.site_stems(stems, site, radius)
        adults = site_stems.loc[site_stems['is_adult'].astype(bool)]
        is_focal = adults['species'] == species
        focal = PointPattern.from_frame(adults.loc[is_focal], window,
                                        mark='focal')
        other = PointPattern.from_frame(adults.loc[~is_focal], window,
                                        mark='other').unique()
        return focal, other

    def bivariate_species(self, stems, site, species, radius):
        """
        Drop species without a single adult in the plus-sampling window

        Parameters
        ----------
        stems : DataFrame
            Stem table as returned from `cohorts.assign_cohorts`.
        site :
            Site to consider.
        species : iterable
            Candidate species.
        radius : scalar
            Plus-sampling buffer width.

        Returns
        -------
        list
            The candidate species with at least one adult in the window, in
            the original order.

        """
        window = self.registry.buffered_window(site, radius)
        site_stems = self.site_stems(stems, site, radius)
        adults = site_stems.loc[site_stems['is_adult'].astype(bool)]
        inside = window.covers(adults[['x', 'y']].to_numpy())
        present = set(adults.loc[inside, 'species'])
        kept = [sp for sp in species if sp in present]
        dropped = [sp for sp in species if sp not in present]
        if dropped:
            logger.info(f"Site {site!r}: no adults inside the buffered "
                        f"window for species {dropped}")
        return kept
