"""
In-memory scanning and indexing of repository trees.

This package is responsible for:
* Walking a repository tree and queueing package candidates.
* Reading, parsing and listing each candidate package.
* Keeping the per-repository index of valid, uniquely identified packages.
"""
