"""Isodistance Bounded Context.

Responsible for reachability polygons around an origin:
- Value Objects: GeoPoint, BoundingBox, Grid, DistanceField, Isoline, ResultCollection
- Services: resolve_bounding_box, sample_grid, compute_distance_field, trace_contour
- Orchestrator: IsolineOrchestrator (adaptive-resolution retry loop)
"""
