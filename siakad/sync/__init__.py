"""
Task/message reconciliation.

Components:
- reconcile: Pure remote-wins merge of two entity lists
- outbox: Durable queue of writes awaiting server acknowledgement
- engine: Fetch, merge, optimistic create and outbox replay
"""

from siakad.sync.engine import PushOutcome, ReconciliationEngine
from siakad.sync.outbox import Outbox, OutboxAction, OutboxEntry
from siakad.sync.reconcile import local_only, merge

__all__ = [
    "merge",
    "local_only",
    "Outbox",
    "OutboxAction",
    "OutboxEntry",
    "PushOutcome",
    "ReconciliationEngine",
]
