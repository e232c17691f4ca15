"""
zhquiz - local-first lexical cache and spaced repetition core for learning
Chinese.

Packages:
    zhquiz.cache      Lexical cache stores, predicates and field-wise merging
    zhquiz.srs        SRS state machine and persistent review store

Modules:
    zhquiz.query      Query strategies, ordering and limits
    zhquiz.reconcile  Local-first reconciliation against the remote source
    zhquiz.remote     Remote lexical source (MongoDB)
    zhquiz.picker     Random pick of unscheduled entries
"""

__version__ = "0.1.0"
