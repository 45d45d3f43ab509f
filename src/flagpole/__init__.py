"""
Flagpole - grouped feature toggles with user group gating.
"""

__version__ = "0.1.0"
