"""users/ -- User record management (validation policy and CRUD service).

Layer rule: users/ may import from auth/ and core/. It does NOT import from api/.
"""
