# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for CourseDesk.

This package contains:
- Database connections and models (PostgreSQL, SQLite for local runs)
- In-process event bus used to deliver audit records
"""
