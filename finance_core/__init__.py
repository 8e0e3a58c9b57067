"""
finance_core - offline-first data access for the OSM Finance loan-tracking client.
"""

__version__ = "1.0.0"
