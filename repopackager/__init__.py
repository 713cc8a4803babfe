"""
Discovery, validation and indexing of packages in local repository trees.

Packages are directories identified by a metadata file. Repositories are
scanned for them, the valid ones are indexed by identifier, and any indexed
package can be exported as a zip archive.
"""

__version__ = "0.1.0"
