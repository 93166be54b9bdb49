"""
Register-side client library.

Runs on the cashier terminal and the customer display, talking to the
Oro POS API over HTTP:

- api_client: httpx client mapping failures to transient vs permanent
- offline_queue: durable capture-and-replay of sales taken offline
- display: customer display state machine and poll loop
- search: debounced universal product search
"""
