"""Unit tests for LabBook web route modules.

Each route module has a corresponding test file. Routers are mounted on a
small FastAPI app with the LabBook exception handlers; services and the
current actor are replaced through ``dependency_overrides``.
"""
