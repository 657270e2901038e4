"""
Local data access for the package cache.

This package is responsible for:
* Reading and writing the version markers next to each cache artifact.
* Extracting declared package attributes from configuration files.
* Querying built package stores.
"""
