"""Library Catalog - Core Package

This package contains the catalog bookkeeping modules:
- Catalog operations (library.py)
- Data models (book.py, loan.py, user.py)
- Snapshot persistence (storage.py)
- CSV exchange (csv_io.py)
- Error types (errors.py)
"""
