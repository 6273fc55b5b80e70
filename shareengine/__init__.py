"""
Share Engine - Source Package

The participant and share engine behind shared transactions: several
people jointly own one expense or income, and the engine tracks what
each of them agreed to and what each of them effectively carries.

DESIGN PRINCIPLES:
1. Money is Decimal, always two places, always penny-exact
2. Fail early, fail loudly (nothing is mutated on invalid input)
3. Participants answer for themselves only
4. Every committed mutation is auditable
5. Storage, identity and notifications are swappable collaborators
"""

__version__ = "1.0.0"
__author__ = "Share Engine Team"
