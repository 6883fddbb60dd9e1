"""
Domain Layer - Value Objects and Entities

Pure, immutable types shared by every other layer. No I/O happens here.
"""
