"""JobForge - Document-processing job orchestrator.

Admits document-processing requests into a priority queue, runs them through
a configurable stage pipeline on a pool of workers, and reports outcomes to
an owner system via webhook.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
