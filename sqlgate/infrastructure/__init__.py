"""
Infrastructure Layer - Database, Security, Audit and Schema Services

Concrete implementations behind the data access facade.
"""
