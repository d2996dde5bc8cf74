"""
unit-storage: multi-tier data access for the unit management tools.

Values are resolved through an ordered chain of storage tiers
(cache -> session -> local -> cloud drive -> remote repository).
"""

__version__ = "0.1.0"
