"""
Repositories for the appointment dashboard: the Supabase record source and
the profiles-backed identity source.
"""

from .appointment_source import (
    EdgeFunctionAppointmentSource,
    SupabaseAppointmentSource,
    row_to_appointment,
)
from .identity_repository import get_caller_identity, profile_to_identity

__all__ = [
    "EdgeFunctionAppointmentSource",
    "SupabaseAppointmentSource",
    "get_caller_identity",
    "profile_to_identity",
    "row_to_appointment",
]
