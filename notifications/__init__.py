"""notifications/ -- Outbound notification queue, worker and mail transport.

Layer rule: notifications/ imports only stdlib, third-party libraries and core/.
"""
