"""
Per-user todo service package.

This module marks the 'src.tasks_api' directory as a Python package. The
FastAPI app lives in ``src.tasks_api.main``; it is not imported here because
importing it reads settings and configures logging.
"""
