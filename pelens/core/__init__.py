"""
PeLens Core Module
===================

Error taxonomy, presentation models and the analysis engine.  Import the
submodules directly (``pelens.core.errors``, ``pelens.core.engine``).
"""
