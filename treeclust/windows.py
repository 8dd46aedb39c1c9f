#!/usr/bin/env python

"""File: windows.py
Module to represent the polygonal study windows of census plots, and to keep
track of the core and full windows of every site.

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
import numpy
import shapely
from shapely import geometry
from matplotlib import pyplot, patches

from .config import RMAX
from .errors import UnknownSiteError
from .memoize import memoize_method
from .utils import AlmostImmutable, as_xy

logger = logging.getLogger(__name__)

# Segments per quarter circle when buffering
QUAD_SEGS = 32


class Window(AlmostImmutable):
    """
    Represent a polygon-shaped window in the Euclidean plane, and provide
    methods for computing quantities related to it.

    Parameters
    ----------
    shape : sequence or Polygon or MultiPolygon or Window
        A sequence of coordinate tuples giving the exterior ring, or any
        polygonal shapely geometry. A ValueError is raised if the geometry is
        empty, invalid, or not polygonal.
    holes : sequence, optional
        Sequence of interior rings, only used when `shape` is a coordinate
        sequence.
    dilation_of : tuple, optional
        (window, radius) pair if this window is the dilation of `window` by
        `radius`. The polygon is then only an inscribed approximation, and
        membership and boundary distances are computed against the exact
        Minkowski sum instead.

    """

    def __init__(self, shape, holes=None, dilation_of=None):
        if isinstance(shape, Window):
            polygon = shape.polygon
            if dilation_of is None:
                dilation_of = shape.dilation_of
        elif isinstance(shape, shapely.Geometry):
            polygon = shape
        else:
            polygon = geometry.Polygon(shape, holes=holes)

        if polygon.geom_type not in ('Polygon', 'MultiPolygon'):
            raise ValueError("a window must be polygonal, got a {}"
                             .format(polygon.geom_type))
        if polygon.is_empty or polygon.area == 0.0:
            raise ValueError("a window must have positive area")
        if not polygon.is_valid:
            raise ValueError("invalid window geometry: {}"
                             .format(shapely.is_valid_reason(
                                 polygon)))

        shapely.prepare(polygon)
        self.polygon = polygon
        self.dilation_of = dilation_of

    def __eq__(self, other):
        if not isinstance(other, Window):
            return NotImplemented
        return self.polygon.equals(other.polygon)

    def __hash__(self):
        # Geometrically equal windows have identical bounds
        return hash(self.polygon.bounds)

    def __repr__(self):
        return "{}({})".format(self.__class__.__name__, self.polygon.wkt)

    @property
    def area(self):
        return self.polygon.area

    @property
    def bounds(self):
        return self.polygon.bounds

    @property
    def boundary(self):
        return self.polygon.boundary

    def covers(self, points):
        """
        Test which points lie in the window, boundary included

        :points: coordinate pairs, see `utils.as_xy`
        :returns: boolean array with one element per point

        """
        xy = as_xy(points)
        inside = shapely.intersects_xy(self.polygon, xy[:, 0], xy[:, 1])
        if self.dilation_of is not None:
            source, radius = self.dilation_of
            inside |= source.distances(xy) <= radius
        return inside

    def distances(self, points):
        """
        Compute the distance from each point to the window, zero for points
        inside it

        :points: coordinate pairs, see `utils.as_xy`
        :returns: float array with one element per point

        """
        xy = as_xy(points)
        return numpy.asarray(
            shapely.distance(self.polygon, shapely.points(xy)),
            dtype=numpy.float64)

    def boundary_distances(self, points):
        """
        Compute the distance from each point to the window boundary

        This is the border distance used for border (minus sampling) edge
        correction. Points outside the window get their distance to the
        boundary as well, so callers must test membership separately.

        For a dilated window, points inside the source window are at least
        their distance to the source boundary plus the dilation radius from
        the exact boundary, and get the larger of this bound and the distance
        to the approximating polygon.

        :points: coordinate pairs, see `utils.as_xy`
        :returns: float array with one element per point

        """
        xy = as_xy(points)
        dist = numpy.asarray(
            shapely.distance(self.boundary, shapely.points(xy)),
            dtype=numpy.float64)
        if self.dilation_of is not None:
            source, radius = self.dilation_of
            inner = source.covers(xy)
            dist[inner] = numpy.maximum(
                dist[inner], source.boundary_distances(xy[inner]) + radius)
        return dist

    @memoize_method
    def dilate(self, radius):
        """
        Compute the Minkowski sum of the window and a disc of a given radius

        Parameters
        ----------
        radius : scalar
            Radius of the disc. Zero gives back this window.

        Returns
        -------
        Window
            Dilated window.

        """
        if radius < 0:
            raise ValueError("dilation radius must be non-negative, got {}"
                             .format(radius))
        if radius == 0:
            return self
        return type(self)(self.polygon.buffer(radius, quad_segs=QUAD_SEGS),
                          dilation_of=(self, radius))

    @memoize_method
    def erode(self, radius):
        """
        Compute the set of points in the window at least a given distance from
        its boundary

        Parameters
        ----------
        radius : scalar
            Erosion distance. Zero gives back this window.

        Returns
        -------
        Window
            Eroded window. A ValueError is raised if nothing is left.

        """
        if radius < 0:
            raise ValueError("erosion radius must be non-negative, got {}"
                             .format(radius))
        if radius == 0:
            return self
        eroded = self.polygon.buffer(-radius, quad_segs=QUAD_SEGS)
        if eroded.is_empty:
            raise ValueError("eroding {!r} by {} leaves an empty window"
                             .format(self, radius))
        return type(self)(eroded)

    def patches(self, **kwargs):
        """
        Return matplotlib.patches.Polygon instances for the exterior rings of
        this window

        :kwargs: passed through to the matplotlib.patches.Polygon constructor
        :returns: list of matplotlib.patches.Polygon instances

        """
        polygons = getattr(self.polygon, 'geoms', [self.polygon])
        return [patches.Polygon(numpy.asarray(p.exterior.coords), **kwargs)
                for p in polygons]

    def plot(self, axes=None, linewidth=2.0, fill=False, **kwargs):
        """
        Plot the window

        The window can be added to an existing plot via the optional 'axes'
        argument.

        :axes: Axes instance to add the window to. If None (default), the
               current Axes instance is used if any, or a new one created, and
               its limits are set to frame the window.
        :linewidth: the linewidth to use for the window boundary. Defaults to
                    2.0.
        :fill: if True, plot a filled window. If False (default), only plot the
               boundary.
        :kwargs: additional keyword arguments passed on to the
                 patches.Polygon() constructor. Note in particular the keywords
                 'edgecolor', 'facecolor' and 'label'.
        :returns: list of the plotted matplotlib.patches.Polygon instances

        """
        if axes is None:
            axes = pyplot.gca()
            axes.set_aspect('equal')
            xmin, ymin, xmax, ymax = self.bounds
            pad = 0.05 * max(xmax - xmin, ymax - ymin)
            axes.set(xlim=(xmin - pad, xmax + pad),
                     ylim=(ymin - pad, ymax + pad))

        return [axes.add_patch(wpatch) for wpatch in
                self.patches(linewidth=linewidth, fill=fill, **kwargs)]


class WindowRegistry(AlmostImmutable):
    """
    Hold the core and full study windows of a set of sites

    The core window is the region used for border-corrected (minus sampling)
    estimation. The full window is the whole censused plot. The plus-sampled
    window for the adult cohort is derived on request by dilating the core
    window.

    Parameters
    ----------
    core : dict
        Mapping from site id to a core window, or anything the `Window`
        constructor accepts.
    full : dict, optional
        Mapping from site id to the full window. Sites without a full window
        use their core window as the full window.

    """

    def __init__(self, core, full=None):
        self._core = {site: Window(w) for (site, w) in core.items()}
        self._full = {site: Window(w) for (site, w) in (full or {}).items()}

        orphans = set(self._full) - set(self._core)
        if orphans:
            raise ValueError("full windows given for sites without a core "
                             "window: {}".format(sorted(map(str, orphans))))
        for (site, fw) in self._full.items():
            if not fw.polygon.covers(self._core[site].polygon):
                logger.warning(f"Core window of site {site!r} extends "
                               f"beyond its full window")

    @classmethod
    def from_frame(cls, frame, rmax=RMAX):
        """
        Create a WindowRegistry from a table of polygon vertices

        Parameters
        ----------
        frame : DataFrame
            Table with the columns 'site', 'kind' ('core' or 'full'), 'x' and
            'y', listing the vertices of each window in boundary order.
        rmax : scalar, optional
            Erosion distance used to derive the core window of sites that
            only have a full window listed.

        Returns
        -------
        WindowRegistry
            New registry.

        """
        unknown = set(frame['kind']) - {'core', 'full'}
        if unknown:
            raise ValueError("unknown window kind(s): {}"
                             .format(sorted(unknown)))

        core, full = {}, {}
        for ((site, kind), vertices) in frame.groupby(['site', 'kind'],
                                                      sort=False):
            coords = vertices[['x', 'y']].to_numpy(dtype=numpy.float64)
            (core if kind == 'core' else full)[site] = Window(coords)

        for (site, fw) in full.items():
            if site not in core:
                logger.info(f"Deriving core window of site {site!r} by "
                            f"eroding its full window by {rmax}")
                core[site] = fw.erode(rmax)

        return cls(core, full=full)

    def __contains__(self, site):
        return site in self._core

    @property
    def sites(self):
        return tuple(self._core)

    def core_window(self, site):
        """
        Return the core window of a site

        An UnknownSiteError is raised if the site is not registered.

        """
        try:
            return self._core[site]
        except KeyError:
            raise UnknownSiteError(site) from None

    def full_window(self, site):
        """
        Return the full window of a site

        An UnknownSiteError is raised if the site is not registered.

        """
        try:
            return self._full[site]
        except KeyError:
            return self.core_window(site)

    def buffered_window(self, site, radius):
        """
        Return the plus-sampling window of a site: the core window dilated by
        `radius`

        An UnknownSiteError is raised if the site is not registered.

        """
        return self.core_window(site).dilate(radius)

    def census_window(self, site, radius=0):
        """
        Return the region whose stems are known to have been censused

        This is the full window of the site if one is registered. Otherwise
        the stems handed in are taken as censused out to the plus-sampling
        window, the core window dilated by `radius`.

        An UnknownSiteError is raised if the site is not registered.

        """
        if site in self._full:
            return self._full[site]
        return self.buffered_window(site, radius)
