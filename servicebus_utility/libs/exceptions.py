"""
Custom exception classes for the Service Bus utility.
Separates configuration, transport and deserialization failures so callers
can tell "the broker failed" apart from "the message body is not what we expected".
"""

from typing import Optional


class ServiceBusUtilityError(Exception):
    """Base exception for Service Bus utility errors."""

    pass


class ConfigurationError(ServiceBusUtilityError):
    """Raised when the queue configuration is missing or invalid."""

    pass


class QueueTransportError(ServiceBusUtilityError):
    """Raised when a send, receive, peek or complete call fails at the broker."""

    def __init__(self, operation: str, error: Exception):
        self.operation = operation
        self.error = error
        super().__init__(f"Service Bus {operation} failed: {error}")


class MessageDeserializationError(ServiceBusUtilityError):
    """Raised when a message body cannot be decoded into the requested type."""

    def __init__(self, target: str, error: Exception, sequence_number: Optional[int] = None):
        self.target = target
        self.error = error
        self.sequence_number = sequence_number
        where = f" (sequence {sequence_number})" if sequence_number is not None else ""
        super().__init__(f"Failed to decode message body{where} as {target}: {error}")


class InvalidRequestError(ServiceBusUtilityError, ValueError):
    """Raised when a gateway call gets an argument it cannot act on (batch size, sequence)."""

    pass
