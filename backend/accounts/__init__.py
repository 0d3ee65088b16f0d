# accounts/__init__.py
"""
Accounts app - Authentication and multi-tenancy for LedgerHub.

This app provides:
- Tenant: Isolated customer boundary
- Company: Legal entity inside a tenant
- User: Custom user model with active_company
- CompanyMembership: User-Company relationship with a role
- ActorContext: Authorization context utilities
"""
