"""Work-assignment consistency engine.

Import submodules directly (for example: ``tasktrack.services.time_tracker``).
"""

__all__: list[str] = []
