"""Service Bus utility: a small web API over a single Azure Service Bus queue.

The typed gateway lives in ``servicebus_utility.libs.gateway``; the HTTP
application in ``servicebus_utility.main``.
"""

__version__ = "1.0.0"
