"""offplanmap - client-side property cache and clustered map pipeline.

A bounded, persistable cache of geocoded off-plan property listings fed by a
paginated backend, with a non-blocking clustered marker renderer and a
performance monitor that keeps the cache within budget.
"""

__version__ = "0.1.0"
