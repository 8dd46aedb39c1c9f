#!/usr/bin/env python

"""File: config.py
Module collecting the constants that define an analysis run, and an immutable
configuration object to override them.

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

from os import path
import pandas

from .utils import AlmostImmutable

RMAX = 15
MIN_INTERIOR = 1
COHORT_BREAKS = (0.0, 0.99, 1.99, 3.99, 9.99, 300.0)
COHORT_LABELS = ('sapling', 'small', 'medium', 'large', 'adult')
SAPLING_DBH = 0.5
MEDIAN_DBH_CAP = 30.0
CORRECTION = 'border'
WEIGHT_TYPE = 'border'

OUTLIERS_FILE = path.join(path.dirname(__file__), 'data',
                          'bivariate_outliers.csv')


def load_outliers(filename=None):
    """
    Read a list of (site, species) pairs to drop from the bivariate table

    Parameters
    ----------
    filename : str, optional
        Path to a CSV file with the columns 'site' and 'species'. If None,
        the list shipped with the package is read.

    Returns
    -------
    frozenset
        Set of (site, species) tuples.

    """
    if filename is None:
        filename = OUTLIERS_FILE
    frame = pandas.read_csv(filename, dtype=str, skipinitialspace=True)
    missing = {'site', 'species'} - set(frame.columns)
    if missing:
        raise ValueError("outlier file {} lacks the column(s) {}"
                         .format(filename, sorted(missing)))
    return frozenset(zip(frame['site'], frame['species']))


class AnalysisConfig(AlmostImmutable):
    """
    Hold the constants of one analysis run

    Every parameter defaults to the module-level constant of the same name.

    Parameters
    ----------
    rmax : int, optional
        Largest radius in the radius sequence. Also the buffer width of the
        plus-sampled adult window.
    min_interior : int, optional
        Minimum number of interior cohorts with more than one stem for
        a species to qualify for analysis.
    breaks, labels : sequence, optional
        Cohort diameter breakpoints and cohort names. `labels` must have one
        element less than `breaks`; the last label is the reference (adult)
        cohort.
    sapling_dbh : scalar, optional
        Nominal diameter assigned to sapling-stage stems.
    median_cap : scalar or dict, optional
        Ceiling for the median adult diameter cutoff, either global or
        a mapping from site to ceiling.
    correction, weight_type : str, optional
        Passed through to `weights.kfunc_weights_calc`.
    outliers : iterable, optional
        (site, species) pairs dropped from the bivariate table. If None, the
        packaged list is used.

    """

    def __init__(self, rmax=RMAX, min_interior=MIN_INTERIOR,
                 breaks=COHORT_BREAKS, labels=COHORT_LABELS,
                 sapling_dbh=SAPLING_DBH, median_cap=MEDIAN_DBH_CAP,
                 correction=CORRECTION, weight_type=WEIGHT_TYPE,
                 outliers=None):
        if len(labels) != len(breaks) - 1:
            raise ValueError("need exactly one cohort label per diameter "
                             "interval, got {} labels for {} breaks"
                             .format(len(labels), len(breaks)))
        if len(labels) < 3:
            raise ValueError("at least three cohorts are needed to have an "
                             "interior cohort")
        if rmax < 0:
            raise ValueError("rmax must be non-negative, got {}".format(rmax))
        self.rmax = rmax
        self.min_interior = min_interior
        self.breaks = tuple(breaks)
        self.labels = tuple(labels)
        self.sapling_dbh = sapling_dbh
        self.median_cap = median_cap
        self.correction = correction
        self.weight_type = weight_type
        if outliers is None:
            outliers = load_outliers()
        self.outliers = frozenset(tuple(pair) for pair in outliers)

    @property
    def smallest(self):
        return self.labels[0]

    @property
    def reference(self):
        return self.labels[-1]

    @property
    def interior(self):
        return self.labels[1:-1]

    def constants(self):
        """
        Return the constants that downstream modelling needs alongside an
        analysis table

        """
        return dict(rmax=self.rmax, min_interior=self.min_interior,
                    labels=self.labels)
