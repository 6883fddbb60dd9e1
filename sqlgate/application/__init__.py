"""
Application Layer - Public Operations and Contracts

This layer contains:
- Services: The data access facade callers talk to
- Interfaces: Exception contracts
"""
