"""
Salon Scheduling Service

Appointment conflict checking and recurrence expansion for a
multi-tenant salon management platform.
"""

__version__ = "0.1.0"
