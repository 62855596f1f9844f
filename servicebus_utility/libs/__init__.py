"""Internal libraries for the Service Bus utility.

Modules include configuration, the Service Bus connection helpers, the typed
queue gateway, presentation mappers, metrics, tracing and logging setup.
"""
