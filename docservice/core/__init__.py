"""
Shared, cross-cutting code for the document service.

`core/` holds the small building blocks every feature uses (DB wiring,
settings, error taxonomy, request context). Keep table-specific SQL in the
corresponding feature package (e.g. `tasks/`, `changes/`).
"""
