"""
Botdesk Application Package

This package contains all the core application modules including:
- api: FastAPI application, routes and request/response schemas
- auth: Password hashing, bearer tokens, sessions and verification codes
- billing: Stripe subscription lifecycle
- db: MongoDB client and document models
- services: External service integrations (inference, storage, mail)
- tests: Test suites
"""
