"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .admission import AdmissionDecision, AdmissionStrategy
from .open_admission import OpenAdmission

__all__ = ['AdmissionDecision', 'AdmissionStrategy', 'OpenAdmission']
