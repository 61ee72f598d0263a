"""
Campaign tracker submission backend.
Accepts website form submissions, commits the updated JSON documents to the
site repository, then triggers a static-site rebuild.
"""

__version__ = "0.1.0"
