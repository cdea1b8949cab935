"""
Senior citizen registry.

- Registry CRUD keyed by OSCA id
- Archive instead of delete (records are never hard-deleted)
- Summary counts per status/barangay for the dashboard
"""
