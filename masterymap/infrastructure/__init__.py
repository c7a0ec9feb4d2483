"""
Infrastructure layer package.

Contains concrete adapters for external systems. The only one this
service owns is the pooled PostgreSQL connection and the transaction
helpers built on it.
"""
