# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Adote uma Área - adoption request workflow core.
"""

__version__ = "1.0.0"
