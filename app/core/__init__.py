"""
Core Application - shared infrastructure.

Generic building blocks used by the payments app. Nothing in here knows
about payments, bookings or gateways.

Models (import from core.models):
    - BaseModel: Abstract model with created_at / updated_at

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - MetadataMixin: JSON metadata storage

Services (import from core.services):
    - BaseService: Logger and transaction helpers for service classes
    - ServiceResult: Success/failure wrapper for expected outcomes

Exceptions (import from core.exceptions):
    - BaseApplicationError and its ValidationError, NotFoundError,
      PermissionDeniedError, ConflictError, ExternalServiceError subclasses

Views (import from core.views):
    - health_check: Database/cache probe
"""
