"""
admin_auth - system administrator authentication and risk scoring service
"""

__version__ = "1.0.0"
