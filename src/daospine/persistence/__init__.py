"""Writes, audit and lazy references.

Modules
-------
identity    Unassigned | Assigned identifier state
audit       AuditPolicy, AuditRecord, auditors, AuditTrail
dispatcher  PersistenceDispatcher (save / update / merge / delete / remove)
lazy        LazyRef and get_initialized
"""

from daospine.persistence.audit import (
    AuditOperation,
    AuditPolicy,
    AuditRecord,
    AuditTrail,
    Auditor,
    EngineAuditor,
    LoggingAuditor,
    NullAuditor,
    SessionAuditor,
)
from daospine.persistence.dispatcher import PersistenceDispatcher
from daospine.persistence.identity import Assigned, IdentifierState, Unassigned, identifier_state
from daospine.persistence.lazy import LazyRef, Loaded, Unloaded, get_initialized

__all__ = [
    "Assigned",
    "AuditOperation",
    "AuditPolicy",
    "AuditRecord",
    "AuditTrail",
    "Auditor",
    "EngineAuditor",
    "IdentifierState",
    "LazyRef",
    "Loaded",
    "LoggingAuditor",
    "NullAuditor",
    "PersistenceDispatcher",
    "SessionAuditor",
    "Unassigned",
    "Unloaded",
    "get_initialized",
    "identifier_state",
]
