"""
Shopfloor business modules.

One sub-package per area of the production-to-dispatch pipeline:
project, production, quality, rework, dispatch, fleet, inventory, returns.
Modules import from ``shopfloor_kernel``; the kernel never imports modules
at import time.
"""
