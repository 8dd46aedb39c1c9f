#!/usr/bin/env python

"""File: __init__.py
Package to build point patterns from tree-census plots and estimate
border-corrected, inhomogeneity-corrected K-functions of juvenile trees.

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

from .config import AnalysisConfig, load_outliers
from .errors import (UnknownSiteError, WindowMismatchError, StemTableError,
                     EmptyAnalysisError)
from .stems import check_stems, jitter_duplicates
from .windows import Window, WindowRegistry
from .cohorts import (assign_cohorts, cohort_counts, qualifies,
                      replication_flags)
from .pointpatterns import PointPattern, PointPatternBuilder
from .kfunctions import (KCurve, radii, univariate, cross_type,
                         poisson_curve, correct)
from .weights import kfunc_weights_calc
from .analysis import (AnalysisRow, AnalysisTable, AnalysisTableAssembler,
                       Failure)

logging.getLogger(__name__).addHandler(logging.NullHandler())
