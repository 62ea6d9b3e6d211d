# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit trail domain."""

from coursedesk.domains.audit.service import (
    ActorContext,
    AuditLogWriter,
    AuditRecord,
    AuditSink,
    EventBusAuditSink,
    NullAuditSink,
)

__all__ = [
    "ActorContext",
    "AuditLogWriter",
    "AuditRecord",
    "AuditSink",
    "EventBusAuditSink",
    "NullAuditSink",
]
