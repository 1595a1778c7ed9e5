"""Infrastructure Layer.

Adapters implementing domain ports against external systems (routing
engines, geodesic libraries). All I/O lives here.
"""
