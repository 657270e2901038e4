"""
Local, queryable cache of the Nix package indexes.

This package is responsible for:
* Discovering the current remote version of a channel index.
* Downloading the index document and rebuilding a SQLite store from it.
* Collecting declared package attributes from configuration files.
* Resolving those attributes to the versions currently available.
"""
