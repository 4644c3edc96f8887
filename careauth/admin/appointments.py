"""
Appointment collaborator used when a doctor is suspended.

The booking service lives outside careauth; it plugs in through
``app.state.appointments``.  NoAppointments is the stand-alone default.
"""
from __future__ import annotations

import uuid
from typing import Protocol


class AppointmentCanceller(Protocol):
    async def cancel_future_for_doctor(self, doctor_id: uuid.UUID, reason: str) -> int:
        """Cancel the doctor's upcoming appointments; return how many changed."""
        ...


class NoAppointments:
    async def cancel_future_for_doctor(self, doctor_id: uuid.UUID, reason: str) -> int:
        return 0
