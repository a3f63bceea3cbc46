"""
PeLens Output
==============

Rendering of decoded images.

- ``flags``   -- name tables for subsystem and characteristic bitmasks
- ``console`` -- Rich-based console display
- ``report``  -- JSON report generation
"""
