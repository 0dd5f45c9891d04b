"""
CRMRES - CRM Entity Resolution

Turns loosely structured deal, contact, and activity records into
canonical Company and Contact entities, for both a one-time bulk
migration and continuous incremental hooks.
"""

__version__ = "0.1.0"
