"""Transactional sync of shared directories into a target working copy.

This package provides the primitives for:
- Snapshots: full copies of the working copy used for rollback
- Change detection: what git sees as modified in the working copy
- Tree sync: delete-then-copy replacement of named subtrees
- Manifest patching: required package.json scripts
- The transaction that sequences all of the above
"""
