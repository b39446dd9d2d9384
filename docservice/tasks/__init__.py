"""
Task result rows: one per (tenant, document key), upserted on every open.
"""
