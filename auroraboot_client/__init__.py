"""AuroraBoot client - observe remote image builds and stream their logs.

This package provides a client for the AuroraBoot build API: build records,
artifact listing, live log streaming over WebSocket and the session
controller that ties them together for a build detail view.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
