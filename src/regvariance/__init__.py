"""
Regulatory Return Variance Analysis

Fetches regulatory return instances from a reporting API, compares each form
against its previous period, collects failed validation rules and exports the
results to Excel and a local report database.
"""

__version__ = "1.0.0"
__author__ = "Your Organization"
