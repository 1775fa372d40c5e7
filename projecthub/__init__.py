"""
ProjectHub workflow engine.

Project role authorization and task workflow: who may do what inside a
project, which task status changes are allowed, and the audit and
notification side effects of every change.
"""

__version__ = "1.0.0"
