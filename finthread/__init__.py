"""Top-level package for the fin-thread news desk.

This package contains the application entrypoint and all supporting modules
for fetching financial news, rewriting it with a generative model, and
publishing the result to a channel.
"""

__all__ = []
