"""
NFP Compliance Engine
======================
FDA Nutrition Facts Panel label verification.

Checks structured label data against the 21 CFR 101 rule catalog
(format eligibility, serving size / RACC, mandatory nutrients and
nutrient content claims) and produces a traceable validation report.
"""

__version__ = "0.1.0"
