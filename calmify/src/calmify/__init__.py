"""Calmify wellness companion core"""
from .user_state import UserState, CheckInRecord, AssessmentRecord, Habit, EmergencyContact

__all__ = ["UserState", "CheckInRecord", "AssessmentRecord", "Habit", "EmergencyContact"]
