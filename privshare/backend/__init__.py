"""
I/O side of PrivShare: record store, storage collaborators, upload and retrieval.
"""
