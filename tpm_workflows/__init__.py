"""
Trade-promotion workflow engine: multi-tenant, multi-step approval workflows
for promotions, budgets, claims and other business entities.
"""

__version__ = "1.0.0"
