"""Meeting participation module -- stores, engine and read paths.

Provides the Pydantic schemas, SQLAlchemy models, the meeting lifecycle
repository, the participation engine with its notification ledger, and the
read-only meeting query engine.
"""
