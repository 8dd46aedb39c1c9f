#!/usr/bin/env python

"""File: errors.py
Module defining the exceptions raised when an analysis unit cannot be
completed.

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


class UnknownSiteError(KeyError):
    """
    Raised when a site id has no registered window or covariates

    """

    def __init__(self, site, what='window'):
        self.site = site
        KeyError.__init__(self, "no {} registered for site {!r}"
                          .format(what, site))

    def __str__(self):
        return self.args[0]


class WindowMismatchError(ValueError):
    """
    Raised when curves or patterns defined over incompatible windows or radius
    sequences are combined

    """


class StemTableError(ValueError):
    """
    Raised when a stem table lacks required columns

    """


class EmptyAnalysisError(RuntimeError):
    """
    Raised when no analysis row survives filtering

    """
