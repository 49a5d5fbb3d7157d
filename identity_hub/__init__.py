"""
Identity Hub - Source Package

The data-consistency and command-execution core of a personal
"identity graph": who owns which email accounts, paid services
and subscriptions.

DESIGN PRINCIPLES:
1. Two write paths (forms and agent commands), one set of rules
2. Agent suggests -> Executor resolves -> Store records
3. One bad command never blocks its siblings
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Identity Hub Team"
