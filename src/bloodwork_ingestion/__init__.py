"""
Blood-test PDF ingestion.

Turns uploaded lab-report PDFs into validated, de-duplicated lab result
records: rasterize pages, ask a vision model for the results, recover the
JSON payload from its reply, normalize the values and persist them once
per (file, owner).
"""

__version__ = "1.0.0"
