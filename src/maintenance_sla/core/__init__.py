"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from maintenance_sla.core.clock import Clock, SystemClock, ManualClock, as_utc
from maintenance_sla.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ConfigurationException,
    NotFoundError,
    InvalidStateError,
    ConcurrencyConflict,
    ExternalServiceException,
    DispatchError,
)

__all__ = [
    "Clock",
    "SystemClock",
    "ManualClock",
    "as_utc",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ConfigurationException",
    "NotFoundError",
    "InvalidStateError",
    "ConcurrencyConflict",
    "ExternalServiceException",
    "DispatchError",
]
