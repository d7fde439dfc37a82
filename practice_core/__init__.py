# =============================================================================
# practice_core/__init__.py
# Core services for the GP Practice Compliance app
# =============================================================================
"""
practice_core - shared services behind the compliance pages (tasks, policies,
audits, HR/training records, complaints, claims).

Subpackages:
    practice_core.offline  - offline write queue and sync controller
    practice_core.errors   - exception hierarchy and error handlers
    practice_core.logging  - logging configuration
"""

__version__ = "0.1.0"
