# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Observability package - tracing and logging setup.
"""
