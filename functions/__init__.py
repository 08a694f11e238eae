"""Roof Pricing & Adjustment Engine.

This package contains the Python pricing core for roofing estimates.

Architecture:
- EstimationEngine: Evaluates a RuleCatalog into a low/likely/high band
- AdjustmentLedger: Replayable discounts and overrides per estimate
- Pricing tiers: Good/Better/Best presentation and financing
- Firestore: Ledger persistence and tenant pricing rules
"""

__version__ = "1.0.0"
