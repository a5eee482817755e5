"""
Operations Layer

This package provides the business logic that composes database methods
into ladder workflows. Operations handle multi-step transactions,
validation, and phase rules while the layers stay separate.

Architecture:
- Database layer: Pure data access and upserts
- Operations layer: Ladder lifecycle and bracket workflows
- Command layer: Discord integration and user interface
"""
