"""Repository-scoped role assignment for Azure Static Web Apps backed by
GitHub collaborator permissions.
"""
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
