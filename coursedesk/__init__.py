# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""CourseDesk - course back office API.

The enrollment ledger admits participants into courses under a hard
capacity ceiling and issues year-scoped sequential reference codes.
"""

__version__ = "1.0.0"
