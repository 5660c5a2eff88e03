"""
Review Entitlements - feature entitlement and subscription gating service
"""

__version__ = "0.1.0"
