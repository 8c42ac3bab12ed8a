"""Infrastructure layer — git, terraform, Azure CLI, filesystem, templates.

This layer wraps external processes and file I/O. It must never import
from services, commands, or output. The service layer bridges between
domain models and infrastructure.
"""
