"""
Core business logic components.

This package contains the publishing orchestration components:
- Request validation
- Rollback of completed provisioning steps
- Recovery of partially published models
- Publishing error audit log
- Metrics collection
"""
