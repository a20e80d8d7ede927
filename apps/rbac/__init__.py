"""
RBAC (Role-Based Access Control) application.

Provides console access control with:
- Global user identity
- Global roles built from a permission catalog, with immutable system roles
- Role assignments scoped globally or to one tenant
- JWT login/logout backed by the login audit and session registry
"""
