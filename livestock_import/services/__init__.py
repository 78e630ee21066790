"""Import services: orchestration, persistence engine, read-side cache,
privilege gate, progress display and summary rendering.
"""
