"""
Document change history, persisted in size-bounded multi-row batches.
"""
