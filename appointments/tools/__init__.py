"""LLM-callable tools for the booking assistant."""

from .booking import BookAppointmentTool

__all__ = ["BookAppointmentTool"]
