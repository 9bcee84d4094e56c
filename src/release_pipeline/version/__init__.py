"""Version state and the version ledger.

This module manages the persisted semantic version:
- Parsing and validating the version file
- Minor and patch bump rules
- Tag and version-update branch naming
"""
