"""Stage definitions and fail-fast execution.

This module manages the build → deploy → release sequence:
- Stage definitions with dependencies and gates
- Dependency ordering and fail-fast execution
- Stage plans of delegated toolchain commands
- Subprocess execution with timeout enforcement
"""
