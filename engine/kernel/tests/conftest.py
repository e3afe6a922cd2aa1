"""
Engine kernel test configuration.

Kernel tests are synchronous and touch no IO: no database, no network,
no event loop fixtures.
"""
